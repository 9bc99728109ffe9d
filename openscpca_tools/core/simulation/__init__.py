"""Test-data simulation module.

Example Usage
-------------
    >>> from openscpca_tools.core.simulation import SimulationConfig, simulate_adata
    >>> sim = simulate_adata(adata, SimulationConfig(n_cells=100, seed=2024))
    >>> sim.write_h5ad("SCPCL000001_processed_rna.h5ad")
"""

from .simulate import (
    SimulationConfig,
    gene_means,
    simulate_adata,
    simulate_counts,
    simulate_obs,
    simulation_summary,
)

__all__ = [
    "SimulationConfig",
    "gene_means",
    "simulate_adata",
    "simulate_counts",
    "simulate_obs",
    "simulation_summary",
]
