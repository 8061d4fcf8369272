"""
Discrimination and correlation statistics.

Every function returns NaN when its statistic is mathematically undefined
(constant input, a single class, too few observations) instead of raising.
"""

from typing import Dict
import math

import numpy as np
from scipy import stats
from sklearn.metrics import average_precision_score, roc_auc_score


def has_variance(x: np.ndarray) -> bool:
    x = np.asarray(x, dtype=float)
    return x.size > 1 and bool(np.ptp(x) > 0)


def pearson(x: np.ndarray, y: np.ndarray) -> float:
    """Pearson correlation, NaN for fewer than 2 points or zero variance."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if len(x) < 2 or not has_variance(x) or not has_variance(y):
        return math.nan
    return float(stats.pearsonr(x, y)[0])


def spearman(x: np.ndarray, y: np.ndarray) -> float:
    """Spearman rank correlation, NaN for fewer than 2 points or zero variance."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if len(x) < 2 or not has_variance(x) or not has_variance(y):
        return math.nan
    return float(stats.spearmanr(x, y)[0])


def correlate_columns(x: np.ndarray, M: np.ndarray) -> np.ndarray:
    """
    Pearson correlation of a vector with every column of a matrix.

    Args:
        x: Vector of length n
        M: Matrix of shape (n, k)

    Returns:
        Array of length k; NaN where x or a column has zero variance
    """
    x = np.asarray(x, dtype=float)
    M = np.asarray(M, dtype=float)
    result = np.full(M.shape[1], np.nan)
    if len(x) < 2 or not has_variance(x):
        return result

    xc = x - x.mean()
    Mc = M - M.mean(axis=0)
    col_norms = np.sqrt((Mc ** 2).sum(axis=0))
    valid = col_norms > 0
    denom = np.sqrt((xc ** 2).sum()) * col_norms[valid]
    result[valid] = np.clip((xc @ Mc[:, valid]) / denom, -1.0, 1.0)
    return result


def auroc(scores: np.ndarray, labels: np.ndarray) -> float:
    """Area under the ROC curve, NaN if only one class is present."""
    labels = np.asarray(labels, dtype=bool)
    if labels.all() or not labels.any():
        return math.nan
    return float(roc_auc_score(labels, scores))


def aupr(scores: np.ndarray, labels: np.ndarray) -> float:
    """Area under the precision-recall curve (average precision)."""
    labels = np.asarray(labels, dtype=bool)
    if not labels.any():
        return math.nan
    return float(average_precision_score(labels, scores))


def top_k_recovery(scores: np.ndarray, labels: np.ndarray, k: int) -> float:
    """
    Fraction of the k highest-scoring genes that are positives.

    Ties are broken by input order; k is clipped to the number of genes.
    """
    labels = np.asarray(labels, dtype=bool)
    k = min(int(k), len(labels))
    if k < 1:
        return math.nan
    order = np.argsort(-np.asarray(scores, dtype=float), kind="stable")[:k]
    return float(labels[order].sum() / k)


def classification_metrics(
    scores: np.ndarray,
    labels: np.ndarray,
    top_k: int = 100,
) -> Dict[str, float]:
    """
    All gene-set discrimination statistics for one ranking.

    Args:
        scores: Regulatory potentials
        labels: Boolean gene-set membership
        top_k: k for top_k_recovery

    Returns:
        Dict with auroc, aupr, aupr_corrected, pearson, spearman, top_k_recovery
    """
    labels = np.asarray(labels, dtype=bool)
    indicator = labels.astype(float)
    baseline = labels.mean() if len(labels) else math.nan
    area_pr = aupr(scores, labels)

    return {
        "auroc": auroc(scores, labels),
        "aupr": area_pr,
        "aupr_corrected": area_pr - baseline,
        "pearson": pearson(scores, indicator),
        "spearman": spearman(scores, indicator),
        "top_k_recovery": top_k_recovery(scores, labels, top_k),
    }
