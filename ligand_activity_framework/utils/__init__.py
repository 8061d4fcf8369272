"""Utility helpers for the Ligand Activity Framework."""

from .parallel import parallel_map, resolve_n_workers

__all__ = ["parallel_map", "resolve_n_workers"]
