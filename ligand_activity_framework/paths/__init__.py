"""
Signaling Paths

Extracts the signaling paths linking active ligands to their targets and
attributes every used interaction to the data sources supporting it.

Components:
- SignalingPathExtractor: bounded-depth beam search per ligand-target pair
- infer_supporting_datasources: raw-record lookup for extracted edges

Example Usage:
    from ligand_activity_framework.paths import (
        SignalingPathExtractor, infer_supporting_datasources,
    )

    result = SignalingPathExtractor(network).extract(["TGFB1"], ["SERPINE1"])
    annotations = infer_supporting_datasources(result, network)
    annotations.to_dataframe()
"""

from .extraction import (
    IntermediateRanking,
    PathEdge,
    PathExtractionConfig,
    PathScoring,
    SignalingPath,
    SignalingPathExtractor,
    SignalingPathResult,
    get_ligand_signaling_paths,
)
from .datasources import SourceAnnotation, SourceAnnotationTable, infer_supporting_datasources

__all__ = [
    # Extraction
    "IntermediateRanking",
    "PathEdge",
    "PathExtractionConfig",
    "PathScoring",
    "SignalingPath",
    "SignalingPathExtractor",
    "SignalingPathResult",
    "get_ligand_signaling_paths",
    # Data sources
    "SourceAnnotation",
    "SourceAnnotationTable",
    "infer_supporting_datasources",
]
