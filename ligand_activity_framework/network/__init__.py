"""
Interaction Network

Builds the combined, source-weighted directed network from ligand-receptor,
signaling and gene-regulatory edge tables.

Components:
- Edge, CollapsedEdge, Layer: raw and aggregated edge records
- SourceWeights: per-source weights and per-layer hub factors
- InteractionGraphBuilder: aggregation, hub correction and layer merging
- WeightedNetwork: the read-only combined network

Example Usage:
    from ligand_activity_framework.network import (
        Edge, Layer, SourceWeights, InteractionGraphBuilder,
    )

    weights = SourceWeights(
        weights={"omnipath": 1.0, "kegg": 0.5},
        hub_factors={Layer.SIGNALING: 0.5},
    )
    network = (
        InteractionGraphBuilder(weights)
        .add_records([("TGFB1", "TGFBR2", "kegg")], Layer.LIGAND_RECEPTOR)
        .add_records([("TGFBR2", "SMAD3", "omnipath")], Layer.SIGNALING)
        .add_records([("SMAD3", "SERPINE1", "omnipath")], Layer.GENE_REGULATORY)
        .build()
    )
"""

from .schema import CollapsedEdge, Edge, Layer, LAYER_METADATA, SIGNALING_LAYERS, SourceWeights
from .builder import (
    GraphBuilderConfig,
    HubCorrection,
    HubCorrectionMethod,
    InteractionGraphBuilder,
    NetworkStats,
    WeightedNetwork,
    build_weighted_network,
    linear_hub_correction,
    power_hub_correction,
)

__all__ = [
    # Schema
    "CollapsedEdge",
    "Edge",
    "Layer",
    "LAYER_METADATA",
    "SIGNALING_LAYERS",
    "SourceWeights",
    # Builder
    "GraphBuilderConfig",
    "HubCorrection",
    "HubCorrectionMethod",
    "InteractionGraphBuilder",
    "NetworkStats",
    "WeightedNetwork",
    "build_weighted_network",
    "linear_hub_correction",
    "power_hub_correction",
]
