"""
Interaction Graph Builder

Merges ligand-receptor, signaling and gene-regulatory edge lists into one
weighted directed graph. Edges of each layer are weighted by the weight of
their data source, collapsed per directed pair, hub-corrected and finally
concatenated over a shared node set.
"""

from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union
import logging

import networkx as nx
import numpy as np
from scipy import sparse

from ..errors import EmptyGraph, InvalidInput
from .schema import CollapsedEdge, Edge, Layer, SourceWeights

logger = logging.getLogger(__name__)

# (weights, out_degree, hub_factor) -> corrected weights
HubCorrection = Callable[[np.ndarray, np.ndarray, float], np.ndarray]


def linear_hub_correction(
    weights: np.ndarray,
    out_degree: np.ndarray,
    hub_factor: float,
) -> np.ndarray:
    """
    Down-weight edges leaving high out-degree nodes linearly in degree.

    w' = w / (1 + hub_factor * (out_degree - 1))
    """
    if hub_factor < 0:
        raise InvalidInput(f"hub_factor must be >= 0, got {hub_factor}")
    return weights / (1.0 + hub_factor * (np.asarray(out_degree, dtype=float) - 1.0))


def power_hub_correction(
    weights: np.ndarray,
    out_degree: np.ndarray,
    hub_factor: float,
) -> np.ndarray:
    """
    Down-weight edges leaving high out-degree nodes by a power of the degree.

    w' = w * out_degree ** (-hub_factor)
    """
    if hub_factor < 0:
        raise InvalidInput(f"hub_factor must be >= 0, got {hub_factor}")
    return weights * np.power(np.asarray(out_degree, dtype=float), -hub_factor)


class HubCorrectionMethod(Enum):
    """Built-in hub correction functions."""

    LINEAR = "linear"
    POWER = "power"


HUB_CORRECTIONS: Dict[HubCorrectionMethod, HubCorrection] = {
    HubCorrectionMethod.LINEAR: linear_hub_correction,
    HubCorrectionMethod.POWER: power_hub_correction,
}


@dataclass
class GraphBuilderConfig:
    """Configuration for building the combined interaction network."""

    # Enum selects a built-in correction; a callable plugs in a custom one
    hub_correction: Union[HubCorrectionMethod, HubCorrection] = HubCorrectionMethod.LINEAR

    remove_self_loops: bool = True
    min_weight: float = 0.0  # Collapsed edges with weight <= min_weight are dropped

    def resolve_hub_correction(self) -> HubCorrection:
        if isinstance(self.hub_correction, HubCorrectionMethod):
            return HUB_CORRECTIONS[self.hub_correction]
        if isinstance(self.hub_correction, str):
            return HUB_CORRECTIONS[HubCorrectionMethod(self.hub_correction)]
        if callable(self.hub_correction):
            return self.hub_correction
        raise InvalidInput(f"Invalid hub correction: {self.hub_correction!r}")


@dataclass
class NetworkStats:
    """Statistics about the combined network."""

    n_nodes: int
    n_edges: int
    layer_edge_counts: Dict[str, int]
    avg_out_degree: float
    max_out_degree: int
    density: float


class WeightedNetwork:
    """
    Combined source-weighted directed interaction network.

    Holds the collapsed edges of every layer, a frozen NetworkX DiGraph that
    sums weights of pairs present in several layers, and an index of the raw
    edges each pair was collapsed from. Read-only after construction.
    """

    def __init__(
        self,
        layer_edges: Dict[Layer, List[CollapsedEdge]],
        raw_edges: Dict[Tuple[str, str], List[Edge]],
    ):
        self._layer_edges = {layer: list(edges) for layer, edges in layer_edges.items()}
        self._raw_edges = {pair: list(edges) for pair, edges in raw_edges.items()}

        graph = nx.DiGraph()
        for layer in Layer:
            for edge in self._layer_edges.get(layer, []):
                if graph.has_edge(edge.source_node, edge.target_node):
                    data = graph.edges[edge.source_node, edge.target_node]
                    data["weight"] += edge.weight
                    data["layers"] = data["layers"] | {layer}
                    data["layer_weights"][layer] = edge.weight
                else:
                    graph.add_edge(
                        edge.source_node,
                        edge.target_node,
                        weight=edge.weight,
                        layers=frozenset({layer}),
                        layer_weights={layer: edge.weight},
                    )
        self._graph = nx.freeze(graph)

        self._nodes: List[str] = sorted(graph.nodes())
        self._node_index: Dict[str, int] = {node: idx for idx, node in enumerate(self._nodes)}

    @property
    def graph(self) -> nx.DiGraph:
        """Frozen combined graph (edge attributes: weight, layers, layer_weights)."""
        return self._graph

    @property
    def nodes(self) -> List[str]:
        return list(self._nodes)

    @property
    def node_index(self) -> Dict[str, int]:
        return dict(self._node_index)

    @property
    def n_nodes(self) -> int:
        return len(self._nodes)

    @property
    def n_edges(self) -> int:
        return self._graph.number_of_edges()

    def has_node(self, node: str) -> bool:
        return node in self._node_index

    def index_of(self, node: str) -> int:
        return self._node_index[node]

    def layer_edges(self, layer: Layer) -> List[CollapsedEdge]:
        """Collapsed edges of one layer."""
        return list(self._layer_edges.get(layer, []))

    def raw_edges(self, source_node: str, target_node: str) -> List[Edge]:
        """Raw (pre-aggregation) records contributing to a directed pair."""
        return list(self._raw_edges.get((source_node, target_node), []))

    def nodes_in_layers(self, layers: Iterable[Layer]) -> Set[str]:
        nodes: Set[str] = set()
        for layer in layers:
            for edge in self._layer_edges.get(layer, []):
                nodes.add(edge.source_node)
                nodes.add(edge.target_node)
        return nodes

    def successors(self, node: str) -> List[Tuple[str, float]]:
        """Out-neighbours of a node with combined edge weights."""
        if node not in self._graph:
            return []
        return [
            (target, data["weight"])
            for _, target, data in self._graph.out_edges(node, data=True)
        ]

    def adjacency_matrix(
        self,
        layers: Optional[Sequence[Layer]] = None,
    ) -> sparse.csr_matrix:
        """
        Weighted adjacency over the full node list (rows = from, cols = to).

        Args:
            layers: Restrict to these layers (default: all)
        """
        layers = list(layers) if layers is not None else list(Layer)
        rows: List[int] = []
        cols: List[int] = []
        weights: List[float] = []

        for layer in layers:
            for edge in self._layer_edges.get(layer, []):
                rows.append(self._node_index[edge.source_node])
                cols.append(self._node_index[edge.target_node])
                weights.append(edge.weight)

        n_nodes = self.n_nodes
        # Duplicate (row, col) entries from different layers are summed
        return sparse.csr_matrix(
            (weights, (rows, cols)),
            shape=(n_nodes, n_nodes),
            dtype=float,
        )

    def get_stats(self) -> NetworkStats:
        """Get statistics about the network."""
        out_degrees = np.array([d for _, d in self._graph.out_degree()], dtype=float)
        n_nodes = self.n_nodes
        return NetworkStats(
            n_nodes=n_nodes,
            n_edges=self.n_edges,
            layer_edge_counts={
                layer.value: len(self._layer_edges.get(layer, [])) for layer in Layer
            },
            avg_out_degree=float(out_degrees.mean()) if n_nodes else 0.0,
            max_out_degree=int(out_degrees.max()) if n_nodes else 0,
            density=self.n_edges / (n_nodes * (n_nodes - 1)) if n_nodes > 1 else 0.0,
        )

    def to_edge_list(self) -> List[Tuple[str, str, float]]:
        """Combined (from, to, weight) triples sorted by node ids."""
        return sorted(
            (u, v, float(data["weight"])) for u, v, data in self._graph.edges(data=True)
        )

    def to_dataframe(self) -> Any:
        """
        Convert collapsed per-layer edges to a pandas DataFrame.

        Returns:
            DataFrame with columns from, to, weight, layer, sources
        """
        import pandas as pd

        records = [
            {
                "from": edge.source_node,
                "to": edge.target_node,
                "weight": edge.weight,
                "layer": layer.value,
                "sources": ";".join(sorted(edge.sources)),
            }
            for layer in Layer
            for edge in self._layer_edges.get(layer, [])
        ]
        return pd.DataFrame.from_records(
            records, columns=["from", "to", "weight", "layer", "sources"]
        )


class InteractionGraphBuilder:
    """
    Builder for the combined ligand-receptor / signaling / gene-regulatory network.

    Example:
        network = (
            InteractionGraphBuilder(source_weights)
            .add_edges(lr_edges)
            .add_edges(sig_edges)
            .add_edges(gr_edges)
            .build()
        )
    """

    def __init__(
        self,
        source_weights: Optional[SourceWeights] = None,
        config: Optional[GraphBuilderConfig] = None,
    ):
        """
        Initialize builder.

        Args:
            source_weights: Source weighting table (empty table requires every
                source to be known, unless a default weight is set)
            config: Builder configuration
        """
        self.source_weights = source_weights or SourceWeights()
        self.config = config or GraphBuilderConfig()
        self._edges: Dict[Layer, List[Edge]] = {layer: [] for layer in Layer}

    def add_edges(
        self,
        edges: Iterable[Edge],
        layer: Optional[Layer] = None,
    ) -> "InteractionGraphBuilder":
        """
        Add raw edges.

        Args:
            edges: Edge records
            layer: If given, every edge must belong to this layer

        Returns:
            Self for chaining
        """
        count = 0
        for edge in edges:
            if layer is not None and edge.layer != layer:
                raise InvalidInput(
                    f"Edge {edge.source_node}->{edge.target_node} belongs to layer "
                    f"{edge.layer.value}, expected {layer.value}"
                )
            self._edges[edge.layer].append(edge)
            count += 1

        logger.info(f"Added {count} raw edges")
        return self

    def add_records(
        self,
        records: Iterable[Tuple[str, str, str]],
        layer: Layer,
    ) -> "InteractionGraphBuilder":
        """
        Add (from, to, source) or (from, to, source, weight) tuples to one layer.

        Returns:
            Self for chaining
        """
        edges = []
        for record in records:
            if len(record) == 3:
                src, tgt, source = record
                weight = None
            elif len(record) == 4:
                src, tgt, source, weight = record
            else:
                raise InvalidInput(f"Expected 3 or 4 fields per edge record, got {record!r}")
            edges.append(Edge(src, tgt, source, layer, weight))
        return self.add_edges(edges, layer=layer)

    def _resolve_source_weights(self) -> Dict[str, float]:
        """Weight for every source in use; unknown sources fail unless a default is set."""
        used = {edge.source for edges in self._edges.values() for edge in edges}
        unknown = sorted(s for s in used if s not in self.source_weights)

        if unknown and self.source_weights.default_weight is None:
            raise InvalidInput(
                f"{len(unknown)} data sources missing from the weighting table "
                f"and no default weight configured: {', '.join(unknown[:10])}"
            )

        resolved = {s: self.source_weights.weights[s] for s in used if s in self.source_weights}
        for source in unknown:
            logger.warning(
                f"Source {source!r} not in weighting table, using default weight "
                f"{self.source_weights.default_weight}"
            )
            resolved[source] = float(self.source_weights.default_weight)
        return resolved

    def _collapse_layer(
        self,
        layer: Layer,
        source_weight: Dict[str, float],
        raw_index: Dict[Tuple[str, str], List[Edge]],
    ) -> List[CollapsedEdge]:
        """Weighted sum of source contributions per pair, then hub correction."""
        totals: Dict[Tuple[str, str], float] = defaultdict(float)
        pair_sources: Dict[Tuple[str, str], Set[str]] = defaultdict(set)
        pair_edges: Dict[Tuple[str, str], List[Edge]] = defaultdict(list)

        for edge in self._edges[layer]:
            if self.config.remove_self_loops and edge.source_node == edge.target_node:
                continue
            contribution = source_weight[edge.source] * (
                1.0 if edge.weight is None else edge.weight
            )
            if contribution <= 0:
                continue
            totals[edge.pair] += contribution
            pair_sources[edge.pair].add(edge.source)
            pair_edges[edge.pair].append(edge)

        if not totals:
            return []

        pairs = sorted(totals)
        weights = np.array([totals[p] for p in pairs], dtype=float)

        out_degree_by_node: Dict[str, int] = defaultdict(int)
        for src, _ in pairs:
            out_degree_by_node[src] += 1
        out_degree = np.array([out_degree_by_node[src] for src, _ in pairs], dtype=float)

        hub_factor = self.source_weights.hub_factor(layer)
        if hub_factor > 0:
            weights = self.config.resolve_hub_correction()(weights, out_degree, hub_factor)
            logger.debug(f"Applied hub correction to layer {layer.value} (factor={hub_factor})")

        collapsed = []
        for pair, w in zip(pairs, weights):
            if w <= self.config.min_weight:
                continue
            # Only pairs that survive filtering are traceable to raw records
            raw_index[pair].extend(pair_edges[pair])
            collapsed.append(
                CollapsedEdge(pair[0], pair[1], float(w), layer, frozenset(pair_sources[pair]))
            )
        return collapsed

    def build(self) -> WeightedNetwork:
        """
        Build the combined weighted network.

        Returns:
            WeightedNetwork

        Raises:
            InvalidInput: unknown sources and no default weight
            EmptyGraph: no edges remain after filtering
        """
        source_weight = self._resolve_source_weights()
        raw_index: Dict[Tuple[str, str], List[Edge]] = defaultdict(list)

        layer_edges: Dict[Layer, List[CollapsedEdge]] = {}
        for layer in Layer:
            layer_edges[layer] = self._collapse_layer(layer, source_weight, raw_index)
            logger.info(
                f"Layer {layer.value}: {len(self._edges[layer])} raw edges -> "
                f"{len(layer_edges[layer])} weighted pairs"
            )

        if not any(layer_edges.values()):
            raise EmptyGraph("No edges remain after source weighting and filtering")

        network = WeightedNetwork(layer_edges, raw_index)
        stats = network.get_stats()
        logger.info(
            f"Built interaction network: {stats.n_nodes} nodes, {stats.n_edges} edges"
        )
        return network

    def clear(self) -> "InteractionGraphBuilder":
        """Clear all added edges."""
        for edges in self._edges.values():
            edges.clear()
        return self


def build_weighted_network(
    lr_edges: Iterable[Edge],
    sig_edges: Iterable[Edge],
    gr_edges: Iterable[Edge],
    source_weights: SourceWeights,
    config: Optional[GraphBuilderConfig] = None,
) -> WeightedNetwork:
    """Convenience wrapper building the network from the three layer tables."""
    return (
        InteractionGraphBuilder(source_weights, config)
        .add_edges(lr_edges, layer=Layer.LIGAND_RECEPTOR)
        .add_edges(sig_edges, layer=Layer.SIGNALING)
        .add_edges(gr_edges, layer=Layer.GENE_REGULATORY)
        .build()
    )
