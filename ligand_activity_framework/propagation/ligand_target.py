"""
Ligand-Target Matrix

Dense regulatory-potential matrix indexed by two ordered label sets
(target genes x ligands). Values are frozen on construction; every
transformation returns a new matrix.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import logging

import numpy as np

from ..errors import InvalidInput

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LigandTargetLink:
    """A weighted ligand -> target prediction."""

    ligand: str
    target: str
    weight: float


@dataclass
class LigandTargetMatrix:
    """
    Regulatory potential of every ligand on every target gene.

    Attributes:
        genes: Ordered target gene labels (rows)
        ligands: Ordered ligand labels (columns)
        values: 2D array of shape (n_genes, n_ligands), read-only
        gene_index: Mapping from gene to row index
        ligand_index: Mapping from ligand to column index
        metadata: Provenance (damping factor, mode, skipped ligands, ...)
    """

    genes: List[str]
    ligands: List[str]
    values: np.ndarray  # shape: (n_genes, n_ligands)
    gene_index: Dict[str, int] = field(default_factory=dict)
    ligand_index: Dict[str, int] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate labels, build index mappings and freeze values."""
        self.genes = list(self.genes)
        self.ligands = list(self.ligands)
        values = np.array(self.values, dtype=float)

        if values.shape != (len(self.genes), len(self.ligands)):
            raise InvalidInput(
                f"values shape {values.shape} does not match "
                f"{len(self.genes)} genes x {len(self.ligands)} ligands"
            )
        if len(set(self.genes)) != len(self.genes):
            raise InvalidInput("Duplicate gene labels in ligand-target matrix")
        if len(set(self.ligands)) != len(self.ligands):
            raise InvalidInput("Duplicate ligand labels in ligand-target matrix")

        values.setflags(write=False)
        self.values = values
        self.gene_index = {g: i for i, g in enumerate(self.genes)}
        self.ligand_index = {l: j for j, l in enumerate(self.ligands)}

    @property
    def n_genes(self) -> int:
        return len(self.genes)

    @property
    def n_ligands(self) -> int:
        return len(self.ligands)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.values.shape

    def has_ligand(self, ligand: str) -> bool:
        return ligand in self.ligand_index

    def has_gene(self, gene: str) -> bool:
        return gene in self.gene_index

    def value(self, gene: str, ligand: str) -> float:
        """Regulatory potential of ligand on gene."""
        return float(self.values[self.gene_index[gene], self.ligand_index[ligand]])

    def column(self, ligand: str, genes: Optional[Sequence[str]] = None) -> np.ndarray:
        """
        Potentials of one ligand.

        Args:
            ligand: Ligand label
            genes: Optional gene order; every gene must be a row of the matrix

        Returns:
            1D array aligned with genes (or with all rows)
        """
        if ligand not in self.ligand_index:
            raise KeyError(f"Ligand not found: {ligand}")
        col = self.values[:, self.ligand_index[ligand]]
        if genes is None:
            return col
        return col[self.row_indices(genes)]

    def row_indices(self, genes: Sequence[str]) -> np.ndarray:
        missing = [g for g in genes if g not in self.gene_index]
        if missing:
            raise InvalidInput(f"{len(missing)} genes not in matrix rows, e.g. {missing[:5]}")
        return np.array([self.gene_index[g] for g in genes], dtype=int)

    def shared_genes(self, genes: Iterable[str]) -> List[str]:
        """Genes (in matrix row order) that are also in the given collection."""
        wanted = set(genes)
        return [g for g in self.genes if g in wanted]

    def restrict(
        self,
        genes: Optional[Sequence[str]] = None,
        ligands: Optional[Sequence[str]] = None,
    ) -> "LigandTargetMatrix":
        """
        Sub-matrix over the requested labels (unknown labels are dropped).

        Args:
            genes: Genes to keep, in the order given
            ligands: Ligands to keep, in the order given
        """
        keep_genes = [g for g in genes if g in self.gene_index] if genes is not None else self.genes
        keep_ligands = (
            [l for l in ligands if l in self.ligand_index] if ligands is not None else self.ligands
        )
        dropped = (len(genes) if genes is not None else self.n_genes) - len(keep_genes)
        if dropped:
            logger.debug(f"restrict: dropped {dropped} genes not in matrix rows")

        rows = [self.gene_index[g] for g in keep_genes]
        cols = [self.ligand_index[l] for l in keep_ligands]
        return LigandTargetMatrix(
            genes=keep_genes,
            ligands=keep_ligands,
            values=self.values[np.ix_(rows, cols)],
            metadata={**self.metadata, "restricted": True},
        )

    def apply_cutoff(self, quantile: float) -> "LigandTargetMatrix":
        """
        Zero potentials below each ligand's column quantile.

        Args:
            quantile: Quantile in [0, 1); 0 keeps everything
        """
        if not 0 <= quantile < 1:
            raise InvalidInput(f"quantile must be in [0, 1), got {quantile}")

        values = np.array(self.values, dtype=float)
        if quantile > 0 and values.size:
            thresholds = np.quantile(values, quantile, axis=0)
            values[values < thresholds[np.newaxis, :]] = 0.0

        return LigandTargetMatrix(
            genes=self.genes,
            ligands=self.ligands,
            values=values,
            metadata={**self.metadata, "cutoff_quantile": quantile},
        )

    def to_discrete(
        self,
        top_n: Optional[int] = None,
        cutoff_quantile: Optional[float] = None,
    ) -> "LigandTargetMatrix":
        """
        Binary matrix of predicted targets (1.0 = predicted target).

        Exactly one of top_n (per ligand) or cutoff_quantile must be given.
        """
        if (top_n is None) == (cutoff_quantile is None):
            raise InvalidInput("Specify exactly one of top_n or cutoff_quantile")

        discrete = np.zeros_like(self.values, dtype=float)
        if top_n is not None:
            if top_n < 1:
                raise InvalidInput(f"top_n must be >= 1, got {top_n}")
            n = min(top_n, self.n_genes)
            for j in range(self.n_ligands):
                col = self.values[:, j]
                order = np.argsort(-col, kind="stable")[:n]
                discrete[order[col[order] > 0], j] = 1.0
        else:
            cut = self.apply_cutoff(cutoff_quantile).values
            discrete[cut > 0] = 1.0

        return LigandTargetMatrix(
            genes=self.genes,
            ligands=self.ligands,
            values=discrete,
            metadata={**self.metadata, "discrete": True},
        )

    def top_targets(self, ligand: str, n: int = 10) -> List[Tuple[str, float]]:
        """Highest-potential genes for a ligand, descending."""
        col = self.column(ligand)
        order = np.argsort(-col, kind="stable")[:n]
        return [(self.genes[i], float(col[i])) for i in order]

    def weighted_links(
        self,
        ligand: str,
        genes: Optional[Iterable[str]] = None,
        cutoff_quantile: float = 0.0,
        top_n: Optional[int] = None,
    ) -> List[LigandTargetLink]:
        """
        Weighted ligand -> target links that pass the ligand's cutoff.

        Args:
            ligand: Ligand label
            genes: Restrict links to these targets (e.g. a gene set of interest)
            cutoff_quantile: Keep targets at or above this column quantile
            top_n: Alternatively keep only the top_n targets of the column

        Returns:
            Links sorted by weight, descending
        """
        col = self.column(ligand)
        if top_n is not None:
            keep = np.zeros(len(col), dtype=bool)
            keep[np.argsort(-col, kind="stable")[:top_n]] = True
        else:
            threshold = np.quantile(col, cutoff_quantile) if cutoff_quantile > 0 else 0.0
            keep = col >= threshold

        wanted = set(genes) if genes is not None else None
        links = [
            LigandTargetLink(ligand, gene, float(col[i]))
            for i, gene in enumerate(self.genes)
            if keep[i] and col[i] > 0 and (wanted is None or gene in wanted)
        ]
        return sorted(links, key=lambda link: (-link.weight, link.target))

    def to_dataframe(self) -> Any:
        """
        Convert to pandas DataFrame.

        Returns:
            DataFrame with genes as index and ligands as columns
        """
        import pandas as pd

        return pd.DataFrame(np.array(self.values), index=self.genes, columns=self.ligands)
