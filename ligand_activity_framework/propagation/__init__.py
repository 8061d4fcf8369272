"""
Propagation

Personalized PageRank over the combined interaction network and the
resulting ligand-target regulatory potential matrix.

Components:
- RandomWalkPropagator: per-ligand random walk with restart
- LigandTargetMatrix: genes x ligands potentials with label indices

Example Usage:
    from ligand_activity_framework.propagation import (
        PropagationConfig, RandomWalkPropagator,
    )

    propagator = RandomWalkPropagator(network, PropagationConfig(damping_factor=0.5))
    ligand_target = propagator.construct_ligand_target_matrix(["TGFB1", "IL6"])
    ligand_target.top_targets("TGFB1", n=20)
"""

from .ligand_target import LigandTargetLink, LigandTargetMatrix
from .random_walk import (
    DanglingPolicy,
    PropagationConfig,
    PropagationMode,
    PropagationResult,
    RandomWalkPropagator,
    Solver,
    construct_ligand_target_matrix,
    row_normalize,
    seed_label,
)

__all__ = [
    # Matrix
    "LigandTargetLink",
    "LigandTargetMatrix",
    # Random walk
    "DanglingPolicy",
    "PropagationConfig",
    "PropagationMode",
    "PropagationResult",
    "RandomWalkPropagator",
    "Solver",
    "construct_ligand_target_matrix",
    "row_normalize",
    "seed_label",
]
