"""
Error Taxonomy

Structural problems abort a stage by raising one of the exceptions below.
Per-entity numeric degeneracies are not raised: they are recorded in the
output tables with an explicit ScoreStatus and summarized once per batch
with the UndefinedScore warning category.
"""

from enum import Enum


class LigandActivityError(Exception):
    """Base class for all framework errors."""


class InvalidInput(LigandActivityError, ValueError):
    """Malformed or missing inputs (unknown sources, gene set not in background, ...)."""


class EmptyGraph(LigandActivityError):
    """No edges remain after weighting and filtering."""


class ConvergenceError(LigandActivityError, RuntimeError):
    """Power iteration did not reach the tolerance within max_iterations."""

    def __init__(self, message: str, n_iterations: int = 0, residual: float = float("nan")):
        super().__init__(message)
        self.n_iterations = n_iterations
        self.residual = residual


class UndefinedScore(UserWarning):
    """Issued when one or more entries of a batch are mathematically undefined."""


class ScoreStatus(Enum):
    """Status of a single entry in an output table."""

    OK = "ok"
    UNDEFINED = "undefined"  # statistic undefined (zero variance, too few genes)
    SKIPPED = "skipped"  # entity absent from the model
    UNNORMALIZABLE = "unnormalizable"  # MAD = 0 and no minimum scale configured
