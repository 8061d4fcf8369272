"""
Activity Normalization

Normalizes per-sample ligand activities per ligand so they are comparable
across samples and can be regressed against phenotype scores.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import logging

import numpy as np
from scipy import stats

from ..errors import InvalidInput
from .single_sample import SampleActivityMatrix

logger = logging.getLogger(__name__)

MAD_TO_STD = 1.4826


class NormalizationMethod(Enum):
    """Methods for normalizing ligand activity columns."""

    ROBUST_ZSCORE = "robust_zscore"  # (x - median) / (MAD * 1.4826)
    ZSCORE = "zscore"  # (x - mean) / std


class ColumnStatus(Enum):
    """Outcome of normalizing one ligand column."""

    NORMALIZED = "normalized"
    SCALE_FLOORED = "scale_floored"  # Zero spread, divided by min_scale
    UNNORMALIZABLE = "unnormalizable"  # Zero spread and no min_scale
    EMPTY = "empty"  # No defined entries


@dataclass
class NormalizationConfig:
    """Configuration for activity normalization."""

    method: NormalizationMethod = NormalizationMethod.ROBUST_ZSCORE

    # Scale used when a column has zero spread; None flags the column instead
    min_scale: Optional[float] = None


@dataclass
class NormalizedActivity:
    """
    Normalized samples x ligands activities.

    Attributes:
        samples: Sample identifiers (rows)
        ligands: Ligands (columns)
        values: Normalized scores, NaN where the raw score was undefined
        defined: Mask of defined entries
        status: Per-ligand ColumnStatus
        centers: Per-ligand median (or mean)
        scales: Per-ligand divisor, NaN when unnormalizable
    """

    samples: List[str]
    ligands: List[str]
    values: np.ndarray
    defined: np.ndarray
    status: Dict[str, ColumnStatus]
    centers: Dict[str, float] = field(default_factory=dict)
    scales: Dict[str, float] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.sample_index = {s: i for i, s in enumerate(self.samples)}
        self.ligand_index = {l: j for j, l in enumerate(self.ligands)}

    @property
    def n_samples(self) -> int:
        return len(self.samples)

    @property
    def n_ligands(self) -> int:
        return len(self.ligands)

    def column(self, ligand: str) -> np.ndarray:
        return self.values[:, self.ligand_index[ligand]]

    def get(self, sample_id: str, ligand: str) -> float:
        return float(self.values[self.sample_index[sample_id], self.ligand_index[ligand]])

    def ligands_with_status(self, status: ColumnStatus) -> List[str]:
        return [l for l in self.ligands if self.status[l] == status]

    def to_dataframe(self) -> Any:
        import pandas as pd

        return pd.DataFrame(self.values, index=self.samples, columns=self.ligands)


class ActivityNormalizer:
    """
    Normalizes ligand activity columns over their defined entries.

    Undefined entries are left NaN and never enter the center or scale.
    """

    def __init__(self, config: Optional[NormalizationConfig] = None):
        """
        Initialize normalizer.

        Args:
            config: Normalization configuration
        """
        self.config = config or NormalizationConfig()
        if self.config.min_scale is not None and self.config.min_scale <= 0:
            raise InvalidInput(f"min_scale must be positive, got {self.config.min_scale}")

    def _center_and_scale(self, x: np.ndarray) -> Tuple[float, float]:
        if self.config.method == NormalizationMethod.ROBUST_ZSCORE:
            center = float(np.median(x))
            scale = float(stats.median_abs_deviation(x)) * MAD_TO_STD
        elif self.config.method == NormalizationMethod.ZSCORE:
            center = float(np.mean(x))
            scale = float(np.std(x))
        else:
            raise ValueError(f"Unknown normalization method: {self.config.method}")
        return center, scale

    def normalize(self, activity: SampleActivityMatrix) -> NormalizedActivity:
        """
        Normalize every ligand column.

        Args:
            activity: Raw per-sample activities

        Returns:
            NormalizedActivity
        """
        normalized = np.full(activity.values.shape, np.nan)
        status: Dict[str, ColumnStatus] = {}
        centers: Dict[str, float] = {}
        scales: Dict[str, float] = {}

        for j, ligand in enumerate(activity.ligands):
            mask = activity.defined[:, j]
            x = activity.values[mask, j]

            if x.size == 0:
                status[ligand] = ColumnStatus.EMPTY
                centers[ligand] = np.nan
                scales[ligand] = np.nan
                continue

            center, scale = self._center_and_scale(x)
            centers[ligand] = center

            if scale > 0:
                status[ligand] = ColumnStatus.NORMALIZED
            elif self.config.min_scale is not None:
                scale = self.config.min_scale
                status[ligand] = ColumnStatus.SCALE_FLOORED
                logger.warning(f"Zero spread for {ligand}, dividing by min_scale={scale}")
            else:
                status[ligand] = ColumnStatus.UNNORMALIZABLE
                scales[ligand] = np.nan
                normalized[mask, j] = 0.0
                logger.warning(f"Zero spread for {ligand}, column flagged unnormalizable")
                continue

            scales[ligand] = scale
            normalized[mask, j] = (x - center) / scale

        n_flagged = sum(1 for s in status.values() if s != ColumnStatus.NORMALIZED)
        logger.info(
            f"Normalized {activity.n_ligands} ligand columns over {activity.n_samples} samples "
            f"({n_flagged} flagged)"
        )

        return NormalizedActivity(
            samples=list(activity.samples),
            ligands=list(activity.ligands),
            values=normalized,
            defined=activity.defined.copy(),
            status=status,
            centers=centers,
            scales=scales,
            metadata={**activity.metadata, "normalization_method": self.config.method.value},
        )


def robust_zscore(x: np.ndarray) -> np.ndarray:
    """
    Robust z-score of a vector: (x - median) / (MAD * 1.4826).

    NaN everywhere when MAD is zero.
    """
    x = np.asarray(x, dtype=float)
    scale = stats.median_abs_deviation(x) * MAD_TO_STD
    if scale == 0:
        return np.full(x.shape, np.nan)
    return (x - np.median(x)) / scale
