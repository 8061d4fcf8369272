"""
Activity-Phenotype Regression

Associates normalized per-sample ligand activities with a per-sample
phenotype score and ranks ligands by the strength of that association.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple
import logging
import math
import warnings

import numpy as np
from scipy import stats

from ..errors import InvalidInput, ScoreStatus, UndefinedScore
from .metrics import has_variance
from .normalization import ColumnStatus, NormalizedActivity

logger = logging.getLogger(__name__)


@dataclass
class RegressionConfig:
    """Configuration for activity-phenotype regression."""

    min_samples: int = 10  # Below this the association is flagged low_n
    rank_by_absolute: bool = False  # Rank by |r| instead of r


@dataclass
class PhenotypeScores:
    """Per-sample phenotype score keyed by sample id."""

    scores: Dict[str, float]
    name: str = "phenotype"

    def __post_init__(self):
        self.scores = {str(k): float(v) for k, v in self.scores.items()}

    def __len__(self) -> int:
        return len(self.scores)

    def __contains__(self, sample_id: str) -> bool:
        return sample_id in self.scores

    def get(self, sample_id: str) -> float:
        return self.scores[sample_id]

    @classmethod
    def from_mapping(cls, data: Mapping[str, float], name: str = "phenotype") -> "PhenotypeScores":
        return cls(dict(data), name=name)


@dataclass
class LigandAssociation:
    """Association of one ligand's activity with the phenotype."""

    ligand: str
    pearson: float = math.nan
    slope: float = math.nan
    intercept: float = math.nan
    p_value: float = math.nan
    n_samples: int = 0
    low_n: bool = False
    status: ScoreStatus = ScoreStatus.OK

    @property
    def is_defined(self) -> bool:
        return self.status == ScoreStatus.OK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ligand": self.ligand,
            "pearson": self.pearson,
            "slope": self.slope,
            "intercept": self.intercept,
            "p_value": self.p_value,
            "n_samples": self.n_samples,
            "low_n": self.low_n,
            "status": self.status.value,
        }


@dataclass
class RegressionRanking:
    """LigandAssociation rows, ranked."""

    rows: List[LigandAssociation]
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[LigandAssociation]:
        return iter(self.rows)

    def get(self, ligand: str) -> LigandAssociation:
        for row in self.rows:
            if row.ligand == ligand:
                return row
        raise KeyError(f"Ligand not found: {ligand}")

    def ranked(self) -> List[LigandAssociation]:
        return list(self.rows)

    def top_ligands(self, n: int = 10) -> List[str]:
        return [row.ligand for row in self.rows if row.is_defined][:n]

    def to_dataframe(self) -> Any:
        import pandas as pd

        df = pd.DataFrame.from_records([row.to_dict() for row in self.rows])
        df.insert(1, "rank", range(1, len(df) + 1))
        return df


class ActivityRegressor:
    """
    Regresses phenotype scores on normalized ligand activities.

    Example:
        regressor = ActivityRegressor(RegressionConfig(min_samples=20))
        ranking = regressor.regress(normalized, phenotype)
        ranking.top_ligands(10)
    """

    def __init__(self, config: Optional[RegressionConfig] = None):
        self.config = config or RegressionConfig()

    def _associate(self, ligand: str, x: np.ndarray, y: np.ndarray) -> LigandAssociation:
        n = len(x)
        low_n = n < self.config.min_samples
        if n < 3 or not has_variance(x) or not has_variance(y):
            return LigandAssociation(ligand, n_samples=n, low_n=low_n, status=ScoreStatus.UNDEFINED)

        fit = stats.linregress(x, y)
        return LigandAssociation(
            ligand,
            pearson=float(fit.rvalue),
            slope=float(fit.slope),
            intercept=float(fit.intercept),
            p_value=float(fit.pvalue),
            n_samples=n,
            low_n=low_n,
        )

    def _sort_key(self, row: LigandAssociation) -> Tuple[int, float, str]:
        if not row.is_defined or math.isnan(row.pearson):
            return (1, 0.0, row.ligand)
        value = abs(row.pearson) if self.config.rank_by_absolute else row.pearson
        return (0, -value, row.ligand)

    def regress(
        self,
        activities: NormalizedActivity,
        phenotype: PhenotypeScores,
    ) -> RegressionRanking:
        """
        Associate every ligand with the phenotype.

        Args:
            activities: Normalized per-sample activities
            phenotype: Per-sample phenotype scores

        Returns:
            RegressionRanking ordered by Pearson r (or |r|), undefined last
        """
        shared = [i for i, s in enumerate(activities.samples) if s in phenotype]
        if not shared:
            raise InvalidInput("No sample is shared by the activity matrix and the phenotype table")

        n_unmatched = activities.n_samples - len(shared)
        if n_unmatched:
            logger.info(f"{n_unmatched} samples have no phenotype score")

        rows = np.array(shared, dtype=int)
        y_all = np.array([phenotype.get(activities.samples[i]) for i in shared], dtype=float)

        results: List[LigandAssociation] = []
        for j, ligand in enumerate(activities.ligands):
            if activities.status[ligand] == ColumnStatus.UNNORMALIZABLE:
                results.append(LigandAssociation(ligand, status=ScoreStatus.UNNORMALIZABLE))
                continue

            x_all = activities.values[rows, j]
            keep = activities.defined[rows, j] & np.isfinite(x_all) & np.isfinite(y_all)
            association = self._associate(ligand, x_all[keep], y_all[keep])
            logger.debug(f"{ligand}: r={association.pearson:.3f} over {association.n_samples} samples")
            results.append(association)

        results.sort(key=self._sort_key)
        ranking = RegressionRanking(
            rows=results,
            metadata={
                "phenotype": phenotype.name,
                "n_shared_samples": len(shared),
                "rank_by_absolute": self.config.rank_by_absolute,
            },
        )

        n_low = sum(1 for row in results if row.low_n and row.is_defined)
        if n_low:
            logger.warning(f"{n_low} associations rest on fewer than {self.config.min_samples} samples")
        n_undefined = sum(1 for row in results if row.status == ScoreStatus.UNDEFINED)
        if n_undefined:
            message = f"{n_undefined} ligand associations are undefined (too few samples or zero variance)"
            logger.warning(message)
            warnings.warn(message, UndefinedScore, stacklevel=2)

        return ranking
