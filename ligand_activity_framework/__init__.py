"""
Ligand Activity Framework

A network-propagation framework for inferring which signaling ligands drive
the gene-expression changes observed in a receiver cell population.
"""

__version__ = "0.1.0"

from .errors import (
    ConvergenceError,
    EmptyGraph,
    InvalidInput,
    LigandActivityError,
    ScoreStatus,
    UndefinedScore,
)
from .pipeline import DataConfig, LigandActivityPipeline, PipelineConfig, PipelineResult

__all__ = [
    # Errors
    "ConvergenceError",
    "EmptyGraph",
    "InvalidInput",
    "LigandActivityError",
    "ScoreStatus",
    "UndefinedScore",
    # Pipeline
    "DataConfig",
    "LigandActivityPipeline",
    "PipelineConfig",
    "PipelineResult",
    "__version__",
]
