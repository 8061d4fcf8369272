"""
Signaling Path Extraction

Explains predicted ligand-target links by the strongest signaling paths
connecting them in the combined interaction network.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple
import logging

import networkx as nx

from ..errors import InvalidInput
from ..network import Layer, WeightedNetwork
from ..propagation import LigandTargetMatrix

logger = logging.getLogger(__name__)


class PathScoring(Enum):
    """How a path's edges combine into its score."""

    PROBABILITY = "probability"  # Product of row-normalized transition probabilities
    WEIGHT_SUM = "weight_sum"  # Sum of raw combined edge weights


class IntermediateRanking(Enum):
    """Key for choosing which intermediate nodes survive each hop."""

    SCORE = "score"  # Best partial path score
    POTENTIAL = "potential"  # Ligand's regulatory potential of the node


@dataclass
class PathExtractionConfig:
    """
    Configuration for signaling path extraction.

    Paths are ranked by the product of row-normalized transition
    probabilities by default, so an edge counts relative to the out-weight
    of the node it leaves. This is not the path with the highest cumulative
    raw weight: a long path through heavy edges can outscore a short strong
    one under WEIGHT_SUM. Set scoring=PathScoring.WEIGHT_SUM to rank by the
    sum of combined edge weights instead.
    """

    top_n_regulators: int = 4  # Intermediate nodes kept per hop
    max_hops: int = 4
    n_paths: int = 1  # Paths returned per ligand-target pair
    scoring: PathScoring = PathScoring.PROBABILITY
    rank_intermediates_by: IntermediateRanking = IntermediateRanking.SCORE

    def __post_init__(self):
        self.scoring = PathScoring(self.scoring)
        self.rank_intermediates_by = IntermediateRanking(self.rank_intermediates_by)
        if self.top_n_regulators < 1:
            raise InvalidInput(f"top_n_regulators must be >= 1, got {self.top_n_regulators}")
        if self.max_hops < 1:
            raise InvalidInput(f"max_hops must be >= 1, got {self.max_hops}")
        if self.n_paths < 1:
            raise InvalidInput(f"n_paths must be >= 1, got {self.n_paths}")


@dataclass(frozen=True)
class PathEdge:
    """One hop of a signaling path."""

    source_node: str
    target_node: str
    weight: float
    probability: float
    layers: FrozenSet[Layer] = frozenset()

    @property
    def pair(self) -> Tuple[str, str]:
        return (self.source_node, self.target_node)


@dataclass
class SignalingPath:
    """An ordered ligand -> ... -> target path and its score."""

    ligand: str
    target: str
    edges: Tuple[PathEdge, ...]
    score: float

    @property
    def nodes(self) -> List[str]:
        return [self.edges[0].source_node] + [e.target_node for e in self.edges]

    @property
    def n_hops(self) -> int:
        return len(self.edges)

    @property
    def intermediates(self) -> List[str]:
        return self.nodes[1:-1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ligand": self.ligand,
            "target": self.target,
            "path": " -> ".join(self.nodes),
            "n_hops": self.n_hops,
            "score": self.score,
        }


@dataclass
class SignalingPathResult:
    """
    Paths for every requested ligand-target pair.

    Attributes:
        paths: Best paths, grouped by pair in request order
        subnetwork: DiGraph of every edge used by a returned path
        intermediates: Nodes retained by the search per (ligand, target)
    """

    paths: List[SignalingPath]
    subnetwork: nx.DiGraph
    intermediates: Dict[Tuple[str, str], List[str]] = field(default_factory=dict)
    unreachable: List[Tuple[str, str]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.paths)

    def paths_for(self, ligand: str, target: str) -> List[SignalingPath]:
        return [p for p in self.paths if p.ligand == ligand and p.target == target]

    def used_pairs(self) -> List[Tuple[str, str]]:
        """Distinct directed pairs used by any path, in path order."""
        seen: Dict[Tuple[str, str], None] = {}
        for path in self.paths:
            for edge in path.edges:
                seen.setdefault(edge.pair, None)
        return list(seen)

    def to_dataframe(self) -> Any:
        """Edge table of the subnetwork (from, to, weight, probability, layers)."""
        import pandas as pd

        records = [
            {
                "from": u,
                "to": v,
                "weight": data["weight"],
                "probability": data["probability"],
                "layers": ",".join(sorted(layer.value for layer in data["layers"])),
            }
            for u, v, data in self.subnetwork.edges(data=True)
        ]
        return pd.DataFrame.from_records(records, columns=["from", "to", "weight", "probability", "layers"])


# Partial path during search: (nodes, edges, score)
_State = Tuple[Tuple[str, ...], Tuple[PathEdge, ...], float]


class SignalingPathExtractor:
    """
    Bounded-depth beam search for the strongest ligand -> target paths.

    At every hop the frontier is deduplicated per node, keeping its best
    partial path, and cut to top_n_regulators nodes.

    Example:
        extractor = SignalingPathExtractor(network, PathExtractionConfig(max_hops=3))
        result = extractor.extract(["TGFB1"], ["SERPINE1", "COL1A1"])
        result.subnetwork.number_of_edges()
    """

    def __init__(
        self,
        network: WeightedNetwork,
        config: Optional[PathExtractionConfig] = None,
        ligand_target: Optional[LigandTargetMatrix] = None,
    ):
        self.network = network
        self.config = config or PathExtractionConfig()
        self.ligand_target = ligand_target

        if (
            self.config.rank_intermediates_by == IntermediateRanking.POTENTIAL
            and ligand_target is None
        ):
            raise InvalidInput("Ranking intermediates by potential requires a ligand-target matrix")

        self._out_edges: Dict[str, List[PathEdge]] = {}

    def _edges_from(self, node: str) -> List[PathEdge]:
        """Out-edges of a node with transition probabilities, cached."""
        if node not in self._out_edges:
            graph = self.network.graph
            out = list(graph.out_edges(node, data=True))
            total = sum(data["weight"] for _, _, data in out)
            self._out_edges[node] = [
                PathEdge(
                    source_node=u,
                    target_node=v,
                    weight=float(data["weight"]),
                    probability=float(data["weight"] / total) if total > 0 else 0.0,
                    layers=frozenset(data["layers"]),
                )
                for u, v, data in sorted(out, key=lambda e: e[1])
            ]
        return self._out_edges[node]

    def _extend(self, score: float, edge: PathEdge) -> float:
        if self.config.scoring == PathScoring.PROBABILITY:
            return score * edge.probability
        return score + edge.weight

    def _initial_score(self) -> float:
        return 1.0 if self.config.scoring == PathScoring.PROBABILITY else 0.0

    def _intermediate_key(self, ligand: str, state: _State) -> Tuple[float, str]:
        node = state[0][-1]
        if self.config.rank_intermediates_by == IntermediateRanking.POTENTIAL:
            if self.ligand_target.has_gene(node) and self.ligand_target.has_ligand(ligand):
                value = self.ligand_target.value(node, ligand)
            else:
                value = 0.0
            return (-value, node)
        return (-state[2], node)

    def _search(self, ligand: str, target: str) -> Tuple[List[SignalingPath], List[str]]:
        """
        Beam search from ligand to target.

        Returns:
            (best paths, retained intermediate nodes)
        """
        frontier: List[_State] = [((ligand,), (), self._initial_score())]
        completed: List[_State] = []
        retained: List[str] = []

        for hop in range(1, self.config.max_hops + 1):
            best_per_node: Dict[str, _State] = {}
            for nodes, edges, score in frontier:
                visited = set(nodes)
                for edge in self._edges_from(nodes[-1]):
                    nxt = edge.target_node
                    if nxt in visited:
                        continue
                    state = (nodes + (nxt,), edges + (edge,), self._extend(score, edge))
                    if nxt == target:
                        completed.append(state)
                    elif hop < self.config.max_hops:
                        current = best_per_node.get(nxt)
                        if current is None or state[2] > current[2]:
                            best_per_node[nxt] = state

            if not best_per_node:
                break
            kept = sorted(best_per_node.values(), key=lambda s: self._intermediate_key(ligand, s))
            frontier = kept[: self.config.top_n_regulators]
            retained.extend(s[0][-1] for s in frontier)

        completed.sort(key=lambda s: (-s[2], len(s[1]), s[0]))
        paths = [
            SignalingPath(ligand=ligand, target=target, edges=edges, score=score)
            for _, edges, score in completed[: self.config.n_paths]
        ]
        return paths, list(dict.fromkeys(retained))

    def extract(
        self,
        ligands: Iterable[str],
        targets: Iterable[str],
    ) -> SignalingPathResult:
        """
        Extract signaling paths for every (ligand, target) pair.

        Args:
            ligands: Ligands (path starts)
            targets: Target genes (path ends)

        Returns:
            SignalingPathResult

        Raises:
            InvalidInput: empty inputs or nodes absent from the network
        """
        ligands = list(dict.fromkeys(ligands))
        targets = list(dict.fromkeys(targets))
        if not ligands or not targets:
            raise InvalidInput("At least one ligand and one target are required")

        missing = [n for n in ligands + targets if not self.network.has_node(n)]
        if missing:
            raise InvalidInput(f"Nodes not in the network: {missing[:10]}")

        all_paths: List[SignalingPath] = []
        intermediates: Dict[Tuple[str, str], List[str]] = {}
        unreachable: List[Tuple[str, str]] = []

        for ligand in ligands:
            for target in targets:
                if ligand == target:
                    continue
                paths, retained = self._search(ligand, target)
                intermediates[(ligand, target)] = retained
                if not paths:
                    unreachable.append((ligand, target))
                    logger.debug(f"No path within {self.config.max_hops} hops: {ligand} -> {target}")
                all_paths.extend(paths)

        subnetwork = nx.DiGraph()
        for path in all_paths:
            for edge in path.edges:
                subnetwork.add_edge(
                    edge.source_node,
                    edge.target_node,
                    weight=edge.weight,
                    probability=edge.probability,
                    layers=edge.layers,
                )
        for node in subnetwork.nodes:
            if node in ligands:
                role = "ligand"
            elif node in targets:
                role = "target"
            else:
                role = "intermediate"
            subnetwork.nodes[node]["role"] = role

        logger.info(
            f"Extracted {len(all_paths)} paths for {len(ligands)} ligands x {len(targets)} targets "
            f"({subnetwork.number_of_edges()} edges, {len(unreachable)} pairs unreachable)"
        )

        return SignalingPathResult(
            paths=all_paths,
            subnetwork=subnetwork,
            intermediates=intermediates,
            unreachable=unreachable,
            metadata={
                "scoring": self.config.scoring.value,
                "max_hops": self.config.max_hops,
                "top_n_regulators": self.config.top_n_regulators,
            },
        )


def get_ligand_signaling_paths(
    network: WeightedNetwork,
    ligands: Sequence[str],
    targets: Sequence[str],
    config: Optional[PathExtractionConfig] = None,
    ligand_target: Optional[LigandTargetMatrix] = None,
) -> SignalingPathResult:
    """Convenience wrapper around SignalingPathExtractor."""
    return SignalingPathExtractor(network, config, ligand_target).extract(ligands, targets)
