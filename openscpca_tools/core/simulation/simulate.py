"""Simulate small AnnData test datasets from real libraries.

Simulated objects keep the gene space and metadata layout of the source so
module scripts can run end to end on them, while no real cell is copied:
counts are drawn per gene from a Poisson distribution with the gene's mean
count, and label columns are resampled from their observed frequencies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
import yaml
from scipy import sparse

logger = logging.getLogger(__name__)


@dataclass
class SimulationConfig:
    """Settings for simulating a test dataset.

    Attributes
    ----------
    n_cells : int
        Number of simulated cells
    seed : int
        Random seed
    label_columns : List[str], optional
        ``obs`` columns to carry over; all categorical/string columns when None
    permute_labels : bool
        Resample each label column independently, so label combinations of the
        source are not reproduced
    layer : str, optional
        Layer holding raw counts; ``X`` when None
    keep_embeddings : bool
        Carry over jittered ``X_umap``/``X_pca`` embeddings when present
    jitter : float
        Standard deviation of embedding jitter, relative to each axis range
    """

    n_cells: int = 100
    seed: int = 2024
    label_columns: Optional[List[str]] = None
    permute_labels: bool = False
    layer: Optional[str] = None
    keep_embeddings: bool = True
    jitter: float = 0.02

    def __post_init__(self) -> None:
        if self.n_cells < 1:
            raise ValueError("n_cells must be at least 1")

    @classmethod
    def from_yaml(cls, path: Path) -> "SimulationConfig":
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        data = data.get("simulation", data)
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in data.items() if k in known})


def gene_means(adata, layer: Optional[str] = None) -> np.ndarray:
    """Mean count per gene, with negative values clipped to 0."""
    matrix = adata.X if layer is None else adata.layers[layer]
    means = np.asarray(matrix.mean(axis=0)).ravel().astype(float)
    return np.clip(np.nan_to_num(means, nan=0.0), 0.0, None)


def simulate_counts(
    means: np.ndarray,
    n_cells: int,
    rng: np.random.Generator,
    size_factor_sd: float = 0.3,
) -> sparse.csr_matrix:
    """Draw a cells x genes Poisson count matrix.

    Each cell gets a log-normal size factor so library sizes vary as they
    do in real data.

    Parameters
    ----------
    means : np.ndarray
        Mean count per gene
    n_cells : int
        Number of cells
    rng : np.random.Generator
        Random generator
    size_factor_sd : float
        Standard deviation of log size factors
    """
    size_factors = rng.lognormal(mean=0.0, sigma=size_factor_sd, size=n_cells)
    size_factors /= size_factors.mean()
    lam = np.outer(size_factors, means)
    counts = rng.poisson(lam).astype(np.float32)
    return sparse.csr_matrix(counts)


def _label_columns(obs: pd.DataFrame, columns: Optional[List[str]]) -> List[str]:
    if columns is not None:
        missing = [c for c in columns if c not in obs.columns]
        if missing:
            raise KeyError(f"Label columns {missing} not found in obs")
        return list(columns)
    return [
        col for col in obs.columns
        if isinstance(obs[col].dtype, pd.CategoricalDtype)
        or pd.api.types.is_object_dtype(obs[col])
        or pd.api.types.is_string_dtype(obs[col])
    ]


def simulate_obs(
    obs: pd.DataFrame,
    n_cells: int,
    rng: np.random.Generator,
    columns: Optional[List[str]] = None,
    permute: bool = False,
    rows: Optional[np.ndarray] = None,
) -> pd.DataFrame:
    """Resample label columns for simulated cells.

    Without ``permute``, whole source rows are resampled so label
    combinations stay consistent; pass ``rows`` to choose those source rows.
    With ``permute``, every column is sampled independently.
    """
    columns = _label_columns(obs, columns)
    barcodes = pd.Index([f"sim-{i}" for i in range(n_cells)], name=obs.index.name)

    if not columns:
        return pd.DataFrame(index=barcodes)

    if permute:
        data = {
            col: obs[col].to_numpy()[rng.integers(0, len(obs), size=n_cells)]
            for col in columns
        }
    else:
        if rows is None:
            rows = rng.integers(0, len(obs), size=n_cells)
        data = {col: obs[col].to_numpy()[rows] for col in columns}

    sim_obs = pd.DataFrame(data, index=barcodes)
    for col in columns:
        if isinstance(obs[col].dtype, pd.CategoricalDtype):
            sim_obs[col] = pd.Categorical(sim_obs[col], categories=obs[col].cat.categories)
    return sim_obs


def _jitter_embedding(embedding: np.ndarray, rows: np.ndarray, rng, jitter: float) -> np.ndarray:
    values = np.asarray(embedding)[rows].astype(float)
    spread = np.ptp(values, axis=0) if len(values) else np.zeros(values.shape[1])
    noise = rng.normal(0.0, 1.0, size=values.shape) * (spread * jitter)
    return values + noise


def simulate_adata(adata, config: Optional[SimulationConfig] = None):
    """Simulate an AnnData test dataset shaped like ``adata``.

    Parameters
    ----------
    adata : AnnData
        Source library with raw counts
    config : SimulationConfig, optional
        Simulation settings

    Returns
    -------
    AnnData
        Simulated object with the same ``var``, ``n_cells`` cells named
        ``sim-<i>``, raw counts in ``X`` and ``layers["counts"]``.

    Raises
    ------
    ValueError
        If the source has no cells or no genes.
    """
    import anndata as ad

    config = config or SimulationConfig()
    if adata.n_obs == 0 or adata.n_vars == 0:
        raise ValueError("Cannot simulate from an AnnData with no cells or genes")

    rng = np.random.default_rng(config.seed)

    means = gene_means(adata, config.layer)
    counts = simulate_counts(means, config.n_cells, rng)
    # Labels and embeddings of a simulated cell come from the same source row
    rows = rng.integers(0, adata.n_obs, size=config.n_cells)
    obs = simulate_obs(
        adata.obs,
        config.n_cells,
        rng,
        columns=config.label_columns,
        permute=config.permute_labels,
        rows=rows,
    )

    sim = ad.AnnData(X=counts, obs=obs, var=adata.var.copy())
    sim.layers["counts"] = counts.copy()

    if config.keep_embeddings:
        for key in ("X_umap", "X_pca"):
            if key in adata.obsm:
                sim.obsm[key] = _jitter_embedding(adata.obsm[key], rows, rng, config.jitter)

    sim.uns["simulation"] = {
        "source_n_cells": int(adata.n_obs),
        "n_cells": int(config.n_cells),
        "seed": int(config.seed),
        "permute_labels": bool(config.permute_labels),
    }

    logger.info(
        "Simulated %d cells x %d genes from %d source cells",
        sim.n_obs, sim.n_vars, adata.n_obs,
    )
    return sim


def simulation_summary(sim) -> Dict[str, Any]:
    """Totals describing a simulated object."""
    totals = np.asarray(sim.X.sum(axis=1)).ravel()
    return {
        "n_cells": int(sim.n_obs),
        "n_genes": int(sim.n_vars),
        "median_counts_per_cell": float(np.median(totals)) if totals.size else 0.0,
        "label_columns": list(sim.obs.columns),
    }
