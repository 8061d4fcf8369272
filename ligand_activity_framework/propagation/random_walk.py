"""
Random-Walk Propagation

Personalized PageRank over the combined interaction network. Each ligand
(or ligand combination) seeds a random walk with restart; the steady-state
visiting probabilities are its regulatory potentials.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
import logging

import numpy as np
from scipy import sparse

from ..errors import ConvergenceError, InvalidInput
from ..network import Layer, SIGNALING_LAYERS, WeightedNetwork
from ..utils import parallel_map
from .ligand_target import LigandTargetMatrix

logger = logging.getLogger(__name__)

Seed = Union[str, Sequence[str]]


class Solver(Enum):
    """Steady-state solvers."""

    ITERATIVE = "iterative"  # Power iteration
    EXACT = "exact"  # Dense linear solve, small graphs only


class DanglingPolicy(Enum):
    """What happens to walkers on nodes without out-edges."""

    TELEPORT = "teleport"  # Jump back to the seeds (vector sums to 1)
    DISCARD = "discard"  # Mass leaves the walk (vector sums to < 1)


class PropagationMode(Enum):
    """How ligand-target potentials are derived from the network."""

    COMBINED = "combined"  # PPR over lr + sig + gr
    SIGNALING_THEN_REGULATORY = "signaling_then_regulatory"  # PPR over lr + sig, then x gr


@dataclass
class PropagationConfig:
    """Configuration for personalized PageRank propagation."""

    damping_factor: float = 0.5  # Probability of following an edge (1 - restart)
    tolerance: float = 1e-10  # L1 change between iterations
    max_iterations: int = 1000

    solver: Solver = Solver.ITERATIVE
    dangling: DanglingPolicy = DanglingPolicy.TELEPORT
    mode: PropagationMode = PropagationMode.COMBINED

    # Two-stage mode: per-ligand quantile below which ligand-TF scores are zeroed
    ltf_cutoff: Optional[float] = 0.99

    exact_max_nodes: int = 2000  # Refuse dense solves above this size
    n_workers: int = 1


@dataclass
class PropagationResult:
    """Steady-state vector of one seed set."""

    label: str
    seeds: List[str]
    scores: np.ndarray  # over network.nodes
    n_iterations: int
    converged: bool
    residual: float
    method: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_mass(self) -> float:
        return float(np.sum(self.scores))


def seed_label(seed: Seed) -> str:
    """Column label of a ligand or ligand combination."""
    if isinstance(seed, str):
        return seed
    return "-".join(seed)


def row_normalize(adj: sparse.csr_matrix) -> Tuple[sparse.csr_matrix, np.ndarray]:
    """
    Row-normalize an adjacency matrix into a transition matrix.

    Returns:
        (transition matrix, boolean mask of dangling rows)
    """
    row_sums = np.asarray(adj.sum(axis=1)).flatten()
    dangling = row_sums <= 0
    row_sums[dangling] = 1.0  # Avoid division by zero
    D_inv = sparse.diags(1.0 / row_sums)
    return sparse.csr_matrix(D_inv @ adj), dangling


class RandomWalkPropagator:
    """
    Propagates ligand signals through the interaction network.

    The walk matrix is row-normalized; the iteration is

        p_t+1 = d * (P^T p_t + dangling(p_t) * r) + (1 - d) * r

    where r is the uniform restart distribution over the seeds.
    """

    def __init__(
        self,
        network: WeightedNetwork,
        config: Optional[PropagationConfig] = None,
    ):
        """
        Initialize propagator.

        Args:
            network: Combined weighted network (read-only, shared by workers)
            config: Propagation configuration
        """
        self.config = config or PropagationConfig()
        if not 0 < self.config.damping_factor < 1:
            raise InvalidInput(
                f"damping_factor must be in (0, 1), got {self.config.damping_factor}"
            )
        if self.config.tolerance <= 0 or self.config.max_iterations < 1:
            raise InvalidInput("tolerance must be > 0 and max_iterations >= 1")

        self.network = network
        if self.config.mode == PropagationMode.COMBINED:
            walk_layers: Sequence[Layer] = list(Layer)
        else:
            walk_layers = SIGNALING_LAYERS
        self._walk_layers = list(walk_layers)

        P, dangling = row_normalize(network.adjacency_matrix(self._walk_layers))
        self._transition_t = sparse.csr_matrix(P.T)
        self._dangling = dangling
        self._gr_adjacency: Optional[sparse.csr_matrix] = None
        self._regulators: Optional[np.ndarray] = None

        logger.info(
            f"Propagator ready: {network.n_nodes} nodes, {P.nnz} walk edges, "
            f"{int(dangling.sum())} dangling nodes, damping={self.config.damping_factor}"
        )

    def _restart_vector(self, seeds: List[str]) -> np.ndarray:
        r = np.zeros(self.network.n_nodes)
        for seed in seeds:
            r[self.network.index_of(seed)] = 1.0
        return r / r.sum()

    def _resolve_seeds(self, seed: Seed) -> List[str]:
        members = [seed] if isinstance(seed, str) else list(seed)
        present = [m for m in members if self.network.has_node(m)]
        absent = [m for m in members if not self.network.has_node(m)]
        if absent:
            logger.warning(f"Seed {seed_label(seed)}: {absent} not in network")
        return present

    def _has_any_seed(self, seed: Seed) -> bool:
        members = [seed] if isinstance(seed, str) else list(seed)
        return any(self.network.has_node(m) for m in members)

    def _power_iteration(self, r: np.ndarray) -> Tuple[np.ndarray, int, float]:
        d = self.config.damping_factor
        teleport = self.config.dangling == DanglingPolicy.TELEPORT
        p = r.copy()
        residual = float("inf")

        for iteration in range(1, self.config.max_iterations + 1):
            p_new = d * self._transition_t.dot(p)
            if teleport:
                p_new += d * p[self._dangling].sum() * r
            p_new += (1 - d) * r

            residual = float(np.abs(p_new - p).sum())
            p = p_new
            if residual < self.config.tolerance:
                return p, iteration, residual

        raise ConvergenceError(
            f"Power iteration did not converge within {self.config.max_iterations} "
            f"iterations (residual={residual:.3e}, tolerance={self.config.tolerance:.1e})",
            n_iterations=self.config.max_iterations,
            residual=residual,
        )

    def _exact_solve(self, r: np.ndarray) -> np.ndarray:
        n_nodes = self.network.n_nodes
        if n_nodes > self.config.exact_max_nodes:
            raise InvalidInput(
                f"Exact solver limited to {self.config.exact_max_nodes} nodes, "
                f"network has {n_nodes}"
            )
        d = self.config.damping_factor
        M = self._transition_t.toarray()
        if self.config.dangling == DanglingPolicy.TELEPORT:
            M += np.outer(r, self._dangling.astype(float))
        return np.linalg.solve(np.eye(n_nodes) - d * M, (1 - d) * r)

    def propagate(self, seed: Seed) -> PropagationResult:
        """
        Personalized PageRank vector of one ligand or ligand combination.

        Args:
            seed: Ligand id or sequence of ligand ids (uniform restart)

        Returns:
            PropagationResult over network.nodes
        """
        seeds = self._resolve_seeds(seed)
        if not seeds:
            raise InvalidInput(f"No seed of {seed_label(seed)} is in the network")
        r = self._restart_vector(seeds)

        if self.config.solver == Solver.EXACT:
            p = self._exact_solve(r)
            n_iterations, residual = 1, 0.0
        else:
            p, n_iterations, residual = self._power_iteration(r)

        return PropagationResult(
            label=seed_label(seed),
            seeds=seeds,
            scores=p,
            n_iterations=n_iterations,
            converged=True,
            residual=residual,
            method=self.config.solver.value,
            metadata={
                "damping_factor": self.config.damping_factor,
                "dangling": self.config.dangling.value,
                "walk_layers": [layer.value for layer in self._walk_layers],
            },
        )

    def _gene_regulatory_adjacency(self) -> sparse.csr_matrix:
        if self._gr_adjacency is None:
            self._gr_adjacency = self.network.adjacency_matrix([Layer.GENE_REGULATORY])
        return self._gr_adjacency

    def _regulator_mask(self) -> np.ndarray:
        """Nodes with gene-regulatory out-edges."""
        if self._regulators is None:
            out = np.asarray(self._gene_regulatory_adjacency().sum(axis=1)).flatten()
            self._regulators = out > 0
        return self._regulators

    def _apply_ltf_cutoff(self, scores: np.ndarray, seeds: Sequence[str]) -> np.ndarray:
        """
        Zero ligand-TF scores below the ligand's quantile cutoff.

        The quantile is taken over candidate regulators only: non-seed nodes
        with gene-regulatory out-edges.
        """
        cutoff = self.config.ltf_cutoff
        if cutoff is None or cutoff <= 0:
            return scores
        candidates = self._regulator_mask().copy()
        for seed in seeds:
            candidates[self.network.index_of(seed)] = False
        if not candidates.any():
            return np.zeros_like(scores)
        threshold = np.quantile(scores[candidates], cutoff)
        return np.where(candidates & (scores >= threshold), scores, 0.0)

    def _potential_vector(self, seed: Seed) -> np.ndarray:
        """Regulatory potential over all nodes for one seed (one worker unit)."""
        result = self.propagate(seed)
        logger.debug(
            f"Propagated {result.label}: {result.n_iterations} iterations, "
            f"mass={result.total_mass:.6f}"
        )
        if self.config.mode == PropagationMode.COMBINED:
            return result.scores

        ligand_tf = self._apply_ltf_cutoff(result.scores, result.seeds)
        return np.asarray(self._gene_regulatory_adjacency().T.dot(ligand_tf)).flatten()

    def construct_ligand_target_matrix(
        self,
        ligands: Sequence[Seed],
        targets: Optional[Sequence[str]] = None,
    ) -> LigandTargetMatrix:
        """
        Build the ligand-target regulatory potential matrix.

        Args:
            ligands: Ligands or ligand combinations (one column each)
            targets: Genes to keep as rows (default: all network nodes)

        Returns:
            LigandTargetMatrix (genes x ligands)
        """
        if not ligands:
            raise InvalidInput("Ligand set is empty")

        units: List[Seed] = []
        skipped: List[str] = []
        for seed in ligands:
            if self._has_any_seed(seed):
                units.append(seed)
            else:
                skipped.append(seed_label(seed))
        if skipped:
            logger.warning(f"Skipping {len(skipped)} ligands absent from the network: {skipped[:10]}")
        if not units:
            raise InvalidInput("None of the requested ligands are in the network")

        labels = [seed_label(s) for s in units]
        if len(set(labels)) != len(labels):
            raise InvalidInput("Duplicate ligands in request")

        logger.info(
            f"Constructing ligand-target matrix for {len(units)} ligands "
            f"(mode={self.config.mode.value}, solver={self.config.solver.value})"
        )
        columns = parallel_map(self._potential_vector, units, self.config.n_workers)
        values = np.column_stack(columns)

        nodes = self.network.nodes
        if targets is None:
            genes = nodes
            rows = np.arange(len(nodes))
        else:
            genes = [g for g in dict.fromkeys(targets) if self.network.has_node(g)]
            n_missing = len(set(targets)) - len(genes)
            if n_missing:
                logger.info(f"{n_missing} requested targets not in network, dropped")
            rows = np.array([self.network.index_of(g) for g in genes], dtype=int)

        return LigandTargetMatrix(
            genes=genes,
            ligands=labels,
            values=values[rows, :],
            metadata={
                "damping_factor": self.config.damping_factor,
                "mode": self.config.mode.value,
                "solver": self.config.solver.value,
                "dangling": self.config.dangling.value,
                "ltf_cutoff": self.config.ltf_cutoff,
                "skipped_ligands": skipped,
            },
        )

    def construct_ligand_tf_matrix(
        self,
        ligands: Sequence[Seed],
        nodes: Optional[Sequence[str]] = None,
    ) -> LigandTargetMatrix:
        """
        Raw PPR scores of ligands over network nodes (no gene-regulatory projection).

        In two-stage mode this is the ligand-TF matrix before the cutoff.
        """
        if not ligands:
            raise InvalidInput("Ligand set is empty")
        units = [s for s in ligands if self._has_any_seed(s)]
        if not units:
            raise InvalidInput("None of the requested ligands are in the network")

        results = parallel_map(self.propagate, units, self.config.n_workers)
        values = np.column_stack([res.scores for res in results])

        all_nodes = self.network.nodes
        keep = list(nodes) if nodes is not None else all_nodes
        keep = [n for n in keep if self.network.has_node(n)]
        rows = np.array([self.network.index_of(n) for n in keep], dtype=int)
        return LigandTargetMatrix(
            genes=keep,
            ligands=[r.label for r in results],
            values=values[rows, :],
            metadata={"damping_factor": self.config.damping_factor, "ligand_tf": True},
        )


def construct_ligand_target_matrix(
    network: WeightedNetwork,
    ligands: Sequence[Seed],
    targets: Optional[Sequence[str]] = None,
    config: Optional[PropagationConfig] = None,
) -> LigandTargetMatrix:
    """Convenience wrapper around RandomWalkPropagator."""
    return RandomWalkPropagator(network, config).construct_ligand_target_matrix(ligands, targets)
