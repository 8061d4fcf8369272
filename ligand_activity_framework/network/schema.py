"""
Interaction Network Schema

Defines the edge layers and the row types of the ligand-receptor,
signaling and gene-regulatory interaction tables.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional

from ..errors import InvalidInput


class Layer(Enum):
    """Edge layers of the combined interaction network."""

    LIGAND_RECEPTOR = "lr"
    SIGNALING = "sig"
    GENE_REGULATORY = "gr"

    @classmethod
    def parse(cls, value: Any) -> "Layer":
        """Accept a Layer, its value ("lr") or its name ("LIGAND_RECEPTOR")."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for layer in cls:
            if text.lower() == layer.value or text.upper() == layer.name:
                return layer
        raise InvalidInput(f"Unknown layer: {value!r}")


# Layers walked by the signaling stage of two-stage propagation
SIGNALING_LAYERS = (Layer.LIGAND_RECEPTOR, Layer.SIGNALING)

LAYER_METADATA = {
    Layer.LIGAND_RECEPTOR: {
        "description": "Ligand binds receptor",
        "typical_sources": ("kegg_ligand_receptor", "omnipath_ligand_receptor"),
    },
    Layer.SIGNALING: {
        "description": "Intracellular signaling (PPI, kinase-substrate, TF activation)",
        "typical_sources": ("omnipath_signaling", "pathwaycommons_signaling"),
    },
    Layer.GENE_REGULATORY: {
        "description": "Transcription factor regulates target gene",
        "typical_sources": ("harmonizome_gr", "regnetwork", "trrust"),
    },
}


@dataclass(frozen=True)
class Edge:
    """A raw interaction record from one data source, before aggregation."""

    source_node: str
    target_node: str
    source: str  # data source label
    layer: Layer
    weight: Optional[float] = None  # defaults to 1.0 during aggregation

    def __post_init__(self):
        for value in (self.source_node, self.target_node, self.source):
            if not isinstance(value, str) or not value:
                raise InvalidInput(
                    f"Edge with empty or non-string id in layer {self.layer.value}: "
                    f"{self.source_node!r} -> {self.target_node!r} ({self.source!r})"
                )
        if self.weight is not None and self.weight < 0:
            raise InvalidInput(
                f"Negative weight {self.weight} for edge "
                f"{self.source_node} -> {self.target_node} ({self.source})"
            )

    @property
    def pair(self):
        return (self.source_node, self.target_node)


@dataclass(frozen=True)
class CollapsedEdge:
    """One directed pair in one layer after source weighting and hub correction."""

    source_node: str
    target_node: str
    weight: float
    layer: Layer
    sources: FrozenSet[str] = frozenset()

    @property
    def pair(self):
        return (self.source_node, self.target_node)


@dataclass
class SourceWeights:
    """
    Per-source scalar weights and layer hyperparameters.

    Attributes:
        weights: Mapping from data source label to weight
        default_weight: Weight for sources missing from the table; None means
            an unknown source is an error
        hub_factors: Hub correction strength per layer (0 disables)
    """

    weights: Dict[str, float] = field(default_factory=dict)
    default_weight: Optional[float] = None
    hub_factors: Dict[Layer, float] = field(default_factory=dict)

    def __post_init__(self):
        for source, weight in self.weights.items():
            if weight < 0:
                raise InvalidInput(f"Negative weight {weight} for source {source!r}")
        if self.default_weight is not None and self.default_weight < 0:
            raise InvalidInput(f"Negative default weight {self.default_weight}")
        self.hub_factors = {Layer.parse(k): float(v) for k, v in self.hub_factors.items()}

    def __contains__(self, source: str) -> bool:
        return source in self.weights

    def hub_factor(self, layer: Layer) -> float:
        return self.hub_factors.get(layer, 0.0)

    @classmethod
    def uniform(cls, sources, weight: float = 1.0, **kwargs) -> "SourceWeights":
        """Give every listed source the same weight."""
        return cls(weights={s: weight for s in sources}, **kwargs)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SourceWeights":
        """
        Build from a config mapping.

        Expected keys: "weights" (source -> weight), optional "default_weight"
        and "hub_factors" (layer -> factor).
        """
        return cls(
            weights={str(k): float(v) for k, v in (data.get("weights") or {}).items()},
            default_weight=data.get("default_weight"),
            hub_factors=dict(data.get("hub_factors") or {}),
        )
