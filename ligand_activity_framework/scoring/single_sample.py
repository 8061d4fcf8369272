"""
Single-Sample / Single-Cell Ligand Activity

Generalizes gene-set scoring to continuous expression profiles: for every
(ligand, sample) pair the ligand's regulatory potentials are correlated with
the sample's scaled expression over the background genes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple
import logging
import warnings

import numpy as np
from scipy import stats

from ..errors import InvalidInput, UndefinedScore
from ..propagation import LigandTargetMatrix
from ..utils import parallel_map
from .metrics import correlate_columns

logger = logging.getLogger(__name__)


class ExpressionScaling(Enum):
    """Per-gene scaling applied before correlation."""

    NONE = "none"
    QUANTILE = "quantile"  # Clip to [q_low, q_high] then min-max to [0, 1]
    ZSCORE = "zscore"  # Mean 0, std 1 per gene


class CorrelationMethod(Enum):
    """Correlation between potentials and expression."""

    PEARSON = "pearson"
    SPEARMAN = "spearman"


@dataclass
class SingleSampleConfig:
    """Configuration for per-sample ligand activity scoring."""

    method: CorrelationMethod = CorrelationMethod.PEARSON

    # Gene restriction per sample
    restrict_to_expressed: bool = True
    expression_threshold: float = 0.0  # Expressed means value > threshold
    min_genes: int = 10  # Fewer usable genes -> undefined score

    n_workers: int = 1


@dataclass
class ExpressionMatrix:
    """
    Expression values for all samples (or cells).

    Attributes:
        samples: Sample / cell identifiers (rows)
        genes: Gene identifiers (columns)
        values: 2D array of shape (n_samples, n_genes)
    """

    samples: List[str]
    genes: List[str]
    values: np.ndarray  # shape: (n_samples, n_genes)
    sample_index: Dict[str, int] = field(default_factory=dict)
    gene_index: Dict[str, int] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.samples = list(self.samples)
        self.genes = list(self.genes)
        self.values = np.asarray(self.values, dtype=float)
        if self.values.shape != (len(self.samples), len(self.genes)):
            raise InvalidInput(
                f"Expression values shape {self.values.shape} does not match "
                f"{len(self.samples)} samples x {len(self.genes)} genes"
            )
        if len(set(self.samples)) != len(self.samples):
            raise InvalidInput("Duplicate sample identifiers in expression matrix")
        if len(set(self.genes)) != len(self.genes):
            raise InvalidInput("Duplicate gene identifiers in expression matrix")
        self.sample_index = {s: i for i, s in enumerate(self.samples)}
        self.gene_index = {g: j for j, g in enumerate(self.genes)}

    @property
    def n_samples(self) -> int:
        return len(self.samples)

    @property
    def n_genes(self) -> int:
        return len(self.genes)

    def get_sample(self, sample_id: str) -> Dict[str, float]:
        """Expression of one sample as gene -> value."""
        if sample_id not in self.sample_index:
            raise KeyError(f"Sample not found: {sample_id}")
        row = self.values[self.sample_index[sample_id]]
        return {gene: float(row[j]) for gene, j in self.gene_index.items()}

    def restrict_genes(self, genes: Sequence[str]) -> "ExpressionMatrix":
        keep = [g for g in genes if g in self.gene_index]
        cols = [self.gene_index[g] for g in keep]
        return ExpressionMatrix(
            samples=self.samples,
            genes=keep,
            values=self.values[:, cols],
            metadata=dict(self.metadata),
        )

    def to_dataframe(self) -> Any:
        import pandas as pd

        return pd.DataFrame(self.values, index=self.samples, columns=self.genes)

    @classmethod
    def from_dataframe(cls, df: Any) -> "ExpressionMatrix":
        """Build from a samples x genes pandas DataFrame."""
        return cls(
            samples=[str(s) for s in df.index],
            genes=[str(g) for g in df.columns],
            values=df.to_numpy(dtype=float),
        )


def scale_expression(
    expression: ExpressionMatrix,
    method: ExpressionScaling = ExpressionScaling.QUANTILE,
    lower_quantile: float = 0.01,
    upper_quantile: float = 0.99,
) -> ExpressionMatrix:
    """
    Scale each gene across samples so values are comparable between samples.

    Args:
        expression: Expression matrix
        method: Scaling method
        lower_quantile: Lower clip quantile (QUANTILE)
        upper_quantile: Upper clip quantile (QUANTILE)

    Returns:
        New scaled ExpressionMatrix
    """
    X = np.array(expression.values, dtype=float)

    if method == ExpressionScaling.NONE:
        scaled = X
    elif method == ExpressionScaling.QUANTILE:
        low = np.quantile(X, lower_quantile, axis=0)
        high = np.quantile(X, upper_quantile, axis=0)
        clipped = np.clip(X, low, high)
        spread = high - low
        spread[spread == 0] = 1.0  # Constant genes scale to 0
        scaled = (clipped - low) / spread
    elif method == ExpressionScaling.ZSCORE:
        mean = X.mean(axis=0)
        std = X.std(axis=0)
        std[std == 0] = 1.0
        scaled = (X - mean) / std
    else:
        raise ValueError(f"Unknown scaling method: {method}")

    return ExpressionMatrix(
        samples=expression.samples,
        genes=expression.genes,
        values=scaled,
        metadata={**expression.metadata, "scaling": method.value},
    )


def expressed_genes(
    expression: ExpressionMatrix,
    threshold: float = 0.0,
    min_fraction: float = 0.1,
) -> Iterator[Tuple[str, float]]:
    """
    Lazily yield (gene, fraction of samples expressing it) for expressed genes.

    A gene is expressed in a sample when its value exceeds threshold, and is
    yielded when that holds in at least min_fraction of the samples.
    """
    if expression.n_samples == 0:
        return
    fractions = (expression.values > threshold).mean(axis=0)
    for gene, fraction in zip(expression.genes, fractions):
        if fraction >= min_fraction:
            yield gene, float(fraction)


def get_expressed_genes(
    expression: ExpressionMatrix,
    threshold: float = 0.0,
    min_fraction: float = 0.1,
) -> Set[str]:
    """Materialize expressed_genes into a set."""
    return {gene for gene, _ in expressed_genes(expression, threshold, min_fraction)}


@dataclass
class SampleActivityMatrix:
    """
    Raw ligand activity per sample.

    Undefined entries are NaN in values and False in defined, so a computed
    near-zero correlation is never confused with an undefined one.
    """

    samples: List[str]
    ligands: List[str]
    values: np.ndarray  # shape: (n_samples, n_ligands)
    defined: np.ndarray  # bool, same shape
    n_genes: np.ndarray  # genes used per sample
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.values = np.asarray(self.values, dtype=float)
        self.defined = np.asarray(self.defined, dtype=bool)
        self.n_genes = np.asarray(self.n_genes, dtype=int)
        if self.values.shape != (len(self.samples), len(self.ligands)):
            raise InvalidInput("Activity values do not match samples x ligands")
        if self.defined.shape != self.values.shape:
            raise InvalidInput("Defined mask does not match activity values")
        self.sample_index = {s: i for i, s in enumerate(self.samples)}
        self.ligand_index = {l: j for j, l in enumerate(self.ligands)}

    @property
    def n_samples(self) -> int:
        return len(self.samples)

    @property
    def n_ligands(self) -> int:
        return len(self.ligands)

    @property
    def n_undefined(self) -> int:
        return int((~self.defined).sum())

    def is_defined(self, sample_id: str, ligand: str) -> bool:
        return bool(self.defined[self.sample_index[sample_id], self.ligand_index[ligand]])

    def get(self, sample_id: str, ligand: str) -> float:
        return float(self.values[self.sample_index[sample_id], self.ligand_index[ligand]])

    def column(self, ligand: str) -> np.ndarray:
        return self.values[:, self.ligand_index[ligand]]

    def to_dataframe(self) -> Any:
        import pandas as pd

        return pd.DataFrame(self.values, index=self.samples, columns=self.ligands)


class SingleSampleActivityEngine:
    """
    Correlates ligand potentials with every sample's expression profile.

    Samples are independent units of work, dispatched through parallel_map.
    """

    def __init__(self, config: Optional[SingleSampleConfig] = None):
        self.config = config or SingleSampleConfig()

    def score(
        self,
        ligand_target: LigandTargetMatrix,
        expression: ExpressionMatrix,
        ligands: Optional[Iterable[str]] = None,
        background: Optional[Iterable[str]] = None,
    ) -> SampleActivityMatrix:
        """
        Ligand activity per sample.

        Args:
            ligand_target: Ligand-target matrix
            expression: Scaled expression (samples x genes)
            ligands: Ligands to score (default: all matrix columns)
            background: Background genes (default: all expression genes)

        Returns:
            SampleActivityMatrix
        """
        requested = list(dict.fromkeys(ligands)) if ligands is not None else ligand_target.ligands
        if not requested:
            raise InvalidInput("Candidate ligand set is empty")
        usable = [l for l in requested if ligand_target.has_ligand(l)]
        missing = [l for l in requested if not ligand_target.has_ligand(l)]
        if missing:
            logger.warning(f"Skipping {len(missing)} ligands absent from the matrix: {missing[:10]}")
        if not usable:
            raise InvalidInput("None of the requested ligands are in the ligand-target matrix")
        if expression.n_samples == 0:
            raise InvalidInput("Expression matrix has no samples")

        universe = set(background) if background is not None else set(expression.genes)
        genes = [g for g in expression.genes if g in universe and ligand_target.has_gene(g)]
        if not genes:
            raise InvalidInput("No background gene is shared by the expression and ligand-target matrices")

        potentials = ligand_target.restrict(genes=genes, ligands=usable).values
        expr_cols = np.array([expression.gene_index[g] for g in genes], dtype=int)
        if self.config.method == CorrelationMethod.SPEARMAN and not self.config.restrict_to_expressed:
            potentials = stats.rankdata(potentials, axis=0)

        logger.info(
            f"Scoring {len(usable)} ligands in {expression.n_samples} samples "
            f"over {len(genes)} background genes"
        )

        def score_sample(i: int) -> Tuple[np.ndarray, int]:
            x = expression.values[i, expr_cols]
            if self.config.restrict_to_expressed:
                mask = x > self.config.expression_threshold
            else:
                mask = np.ones(len(x), dtype=bool)
            n_used = int(mask.sum())
            if n_used < max(self.config.min_genes, 2):
                return np.full(len(usable), np.nan), n_used

            x_used = x[mask]
            P = potentials[mask] if self.config.restrict_to_expressed else potentials
            if self.config.method == CorrelationMethod.SPEARMAN:
                x_used = stats.rankdata(x_used)
                if self.config.restrict_to_expressed:
                    P = stats.rankdata(P, axis=0)
            return correlate_columns(x_used, P), n_used

        results = parallel_map(score_sample, range(expression.n_samples), self.config.n_workers)
        values = np.vstack([r[0] for r in results])
        n_genes = np.array([r[1] for r in results], dtype=int)
        defined = np.isfinite(values)

        activity = SampleActivityMatrix(
            samples=expression.samples,
            ligands=usable,
            values=values,
            defined=defined,
            n_genes=n_genes,
            metadata={
                "method": self.config.method.value,
                "skipped_ligands": missing,
                "n_background": len(genes),
            },
        )

        if activity.n_undefined:
            message = (
                f"{activity.n_undefined} of {values.size} sample-ligand scores are undefined "
                f"(fewer than {self.config.min_genes} expressed genes or constant input)"
            )
            logger.warning(message)
            warnings.warn(message, UndefinedScore, stacklevel=2)

        return activity


def predict_single_sample_activities(
    ligand_target: LigandTargetMatrix,
    expression: ExpressionMatrix,
    ligands: Optional[Iterable[str]] = None,
    background: Optional[Iterable[str]] = None,
    scaling: ExpressionScaling = ExpressionScaling.QUANTILE,
    config: Optional[SingleSampleConfig] = None,
) -> SampleActivityMatrix:
    """Scale expression and score every sample."""
    scaled = scale_expression(expression, scaling)
    return SingleSampleActivityEngine(config).score(ligand_target, scaled, ligands, background)
