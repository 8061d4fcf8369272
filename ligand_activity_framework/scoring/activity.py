"""
Ligand Activity Scoring

Scores how well each ligand's regulatory potentials discriminate a gene set
of interest (e.g. differentially expressed genes) from the background.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional, Sequence, Tuple
import logging
import math
import warnings

import numpy as np

from ..errors import InvalidInput, ScoreStatus, UndefinedScore
from ..propagation import LigandTargetMatrix
from ..utils import parallel_map
from .metrics import classification_metrics, has_variance

logger = logging.getLogger(__name__)


class ActivityStatistic(Enum):
    """Statistics usable as ranking key."""

    AUROC = "auroc"
    AUPR = "aupr"
    AUPR_CORRECTED = "aupr_corrected"
    PEARSON = "pearson"
    SPEARMAN = "spearman"
    TOP_K_RECOVERY = "top_k_recovery"


@dataclass
class ActivityScoringConfig:
    """Configuration for gene-set based ligand activity scoring."""

    rank_by: ActivityStatistic = ActivityStatistic.AUPR_CORRECTED
    top_k: int = 100  # k for top_k_recovery
    n_workers: int = 1


@dataclass(frozen=True)
class GeneSet:
    """
    Genes of interest within a background universe.

    Raises:
        InvalidInput: if genes is not a subset of background, or either is empty
    """

    genes: FrozenSet[str]
    background: FrozenSet[str]

    def __post_init__(self):
        object.__setattr__(self, "genes", frozenset(self.genes))
        object.__setattr__(self, "background", frozenset(self.background))
        if not self.genes:
            raise InvalidInput("Gene set is empty")
        outside = self.genes - self.background
        if outside:
            raise InvalidInput(
                f"{len(outside)} genes of the gene set are not in the background, "
                f"e.g. {sorted(outside)[:5]}"
            )

    @property
    def baseline(self) -> float:
        """Expected precision of a random ranking: |genes| / |background|."""
        return len(self.genes) / len(self.background)

    def indicator(self, genes: Sequence[str]) -> np.ndarray:
        """Boolean membership vector aligned with genes."""
        return np.array([g in self.genes for g in genes], dtype=bool)


@dataclass
class LigandActivity:
    """Discrimination statistics of one ligand."""

    ligand: str
    auroc: float = math.nan
    aupr: float = math.nan
    aupr_corrected: float = math.nan
    pearson: float = math.nan
    spearman: float = math.nan
    top_k_recovery: float = math.nan
    n_background: int = 0
    n_positive: int = 0
    status: ScoreStatus = ScoreStatus.OK

    def statistic(self, stat: ActivityStatistic) -> float:
        return getattr(self, stat.value)

    @property
    def is_defined(self) -> bool:
        return self.status == ScoreStatus.OK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ligand": self.ligand,
            "auroc": self.auroc,
            "aupr": self.aupr,
            "aupr_corrected": self.aupr_corrected,
            "pearson": self.pearson,
            "spearman": self.spearman,
            "top_k_recovery": self.top_k_recovery,
            "n_background": self.n_background,
            "n_positive": self.n_positive,
            "status": self.status.value,
        }


def _sort_key(value: float) -> Tuple[int, float]:
    # Undefined values sort last
    return (1, 0.0) if math.isnan(value) else (0, -value)


@dataclass
class LigandActivityTable:
    """One LigandActivity row per requested ligand."""

    rows: List[LigandActivity]
    rank_by: ActivityStatistic = ActivityStatistic.AUPR_CORRECTED
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[LigandActivity]:
        return iter(self.rows)

    def get(self, ligand: str) -> LigandActivity:
        for row in self.rows:
            if row.ligand == ligand:
                return row
        raise KeyError(f"Ligand not found: {ligand}")

    def ranked(self, by: Optional[ActivityStatistic] = None) -> List[LigandActivity]:
        """Rows sorted by a statistic, descending; undefined and skipped rows last."""
        stat = by or self.rank_by
        return sorted(self.rows, key=lambda row: (*_sort_key(row.statistic(stat)), row.ligand))

    def top_ligands(self, n: int = 10, by: Optional[ActivityStatistic] = None) -> List[str]:
        return [row.ligand for row in self.ranked(by) if row.is_defined][:n]

    @property
    def skipped(self) -> List[str]:
        return [row.ligand for row in self.rows if row.status == ScoreStatus.SKIPPED]

    @property
    def undefined(self) -> List[str]:
        return [row.ligand for row in self.rows if row.status == ScoreStatus.UNDEFINED]

    def to_dataframe(self) -> Any:
        """
        Convert to pandas DataFrame ranked by the configured statistic.

        Returns:
            DataFrame with one row per ligand and a 1-based rank column
        """
        import pandas as pd

        df = pd.DataFrame.from_records([row.to_dict() for row in self.ranked()])
        df.insert(1, "rank", range(1, len(df) + 1))
        return df


class LigandActivityScorer:
    """
    Scores candidate ligands against a gene set of interest.

    For every ligand the regulatory potentials over the background genes are
    treated as predictions of gene-set membership.
    """

    def __init__(self, config: Optional[ActivityScoringConfig] = None):
        """
        Initialize scorer.

        Args:
            config: Scoring configuration
        """
        self.config = config or ActivityScoringConfig()

    def score(
        self,
        ligand_target: LigandTargetMatrix,
        ligands: Iterable[str],
        gene_set: GeneSet,
    ) -> LigandActivityTable:
        """
        Predict ligand activities.

        Args:
            ligand_target: Ligand-target matrix
            ligands: Candidate ligands
            gene_set: Gene set of interest with its background

        Returns:
            LigandActivityTable; ligands absent from the matrix are SKIPPED rows
        """
        ligands = list(dict.fromkeys(ligands))
        if not ligands:
            raise InvalidInput("Candidate ligand set is empty")

        genes = ligand_target.shared_genes(gene_set.background)
        labels = gene_set.indicator(genes)
        n_positive = int(labels.sum())

        n_dropped = len(gene_set.background) - len(genes)
        if n_dropped:
            logger.info(f"{n_dropped} background genes are not rows of the ligand-target matrix")
        if n_positive == 0:
            raise InvalidInput("No gene of the gene set is a row of the ligand-target matrix")
        if n_positive == len(genes):
            raise InvalidInput("Every usable background gene is in the gene set")

        rows = ligand_target.row_indices(genes)

        def score_ligand(ligand: str) -> LigandActivity:
            if not ligand_target.has_ligand(ligand):
                return LigandActivity(ligand, status=ScoreStatus.SKIPPED)

            potentials = ligand_target.values[rows, ligand_target.ligand_index[ligand]]
            if not has_variance(potentials):
                return LigandActivity(
                    ligand,
                    n_background=len(genes),
                    n_positive=n_positive,
                    status=ScoreStatus.UNDEFINED,
                )
            metrics = classification_metrics(potentials, labels, self.config.top_k)
            return LigandActivity(
                ligand,
                n_background=len(genes),
                n_positive=n_positive,
                **metrics,
            )

        logger.info(
            f"Scoring {len(ligands)} ligands against {n_positive} genes of interest "
            f"in a background of {len(genes)}"
        )
        results = parallel_map(score_ligand, ligands, self.config.n_workers)
        table = LigandActivityTable(
            rows=results,
            rank_by=self.config.rank_by,
            metadata={"baseline": n_positive / len(genes), "n_background": len(genes)},
        )

        if table.skipped:
            logger.warning(f"Skipped {len(table.skipped)} ligands absent from the matrix")
        if table.undefined:
            message = f"{len(table.undefined)} ligands have constant potentials over the background"
            logger.warning(message)
            warnings.warn(message, UndefinedScore, stacklevel=2)

        return table


def predict_ligand_activities(
    ligand_target: LigandTargetMatrix,
    ligands: Iterable[str],
    genes_of_interest: Iterable[str],
    background: Iterable[str],
    config: Optional[ActivityScoringConfig] = None,
) -> LigandActivityTable:
    """Convenience wrapper around LigandActivityScorer."""
    gene_set = GeneSet(frozenset(genes_of_interest), frozenset(background))
    return LigandActivityScorer(config).score(ligand_target, ligands, gene_set)
