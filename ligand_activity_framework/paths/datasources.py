"""
Data source attribution for signaling paths.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Tuple, Union
import logging

import networkx as nx

from ..errors import InvalidInput
from ..network import Layer, WeightedNetwork
from .extraction import SignalingPathResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceAnnotation:
    """A data source supporting one directed pair in one layer."""

    source_node: str
    target_node: str
    source: str
    layer: Layer

    def to_dict(self) -> Dict[str, str]:
        return {
            "from": self.source_node,
            "to": self.target_node,
            "source": self.source,
            "layer": self.layer.value,
        }


@dataclass
class SourceAnnotationTable:
    """SourceAnnotation rows in pair order."""

    rows: List[SourceAnnotation]

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[SourceAnnotation]:
        return iter(self.rows)

    def get(self, source_node: str, target_node: str) -> List[SourceAnnotation]:
        return [
            row for row in self.rows
            if row.source_node == source_node and row.target_node == target_node
        ]

    def sources(self) -> Dict[str, int]:
        """Number of supported pairs per data source."""
        counts: Dict[str, int] = {}
        for row in self.rows:
            counts[row.source] = counts.get(row.source, 0) + 1
        return counts

    def to_dataframe(self) -> Any:
        import pandas as pd

        return pd.DataFrame.from_records(
            [row.to_dict() for row in self.rows],
            columns=["from", "to", "source", "layer"],
        )


def _pairs_of(edges: Union[SignalingPathResult, nx.DiGraph, Iterable[Tuple[str, str]]]) -> List[Tuple[str, str]]:
    if isinstance(edges, SignalingPathResult):
        return edges.used_pairs()
    if isinstance(edges, nx.DiGraph):
        return [(u, v) for u, v in edges.edges()]
    return list(dict.fromkeys((u, v) for u, v in edges))


def infer_supporting_datasources(
    edges: Union[SignalingPathResult, nx.DiGraph, Iterable[Tuple[str, str]]],
    network: WeightedNetwork,
) -> SourceAnnotationTable:
    """
    Look up the raw records behind every directed pair.

    A pair collapsed from several sources (or present in several layers)
    yields one annotation per contributing (source, layer).

    Args:
        edges: Path result, subnetwork, or (from, to) pairs
        network: Network the pairs were taken from

    Returns:
        SourceAnnotationTable

    Raises:
        InvalidInput: a node or pair is not in the network
    """
    rows: List[SourceAnnotation] = []
    for source_node, target_node in _pairs_of(edges):
        for node in (source_node, target_node):
            if not network.has_node(node):
                raise InvalidInput(f"Node not in the network: {node}")

        raw = network.raw_edges(source_node, target_node)
        if not raw:
            raise InvalidInput(f"No interaction {source_node} -> {target_node} in the network")

        seen = set()
        for edge in raw:
            key = (edge.source, edge.layer)
            if key in seen:
                continue
            seen.add(key)
            rows.append(SourceAnnotation(source_node, target_node, edge.source, edge.layer))

    logger.info(f"Attributed {len(rows)} data source records to the extracted edges")
    return SourceAnnotationTable(rows)
