"""Reference-profile scoring for cell annotation.

Each query cell is scored against every reference label by correlating
its expression with the label's profile over the genes both share.
Spearman correlation (the default) makes scores insensitive to the
normalization of query and reference.

Supports parallel scoring via joblib: cells are split into chunks and
chunks are scored on a loky process pool.
"""

from __future__ import annotations

import logging
import math
import time
from pathlib import Path
from typing import Iterator, Optional, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy import sparse
from scipy.stats import rankdata

from openscpca_tools.io.tables import read_table, require_columns

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def load_reference_profiles(path: PathLike) -> pd.DataFrame:
    """Load a genes x labels reference profile table.

    The first column holds gene symbols; every other column is a label.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the table is empty or holds non-numeric values.
    """
    profiles = read_table(path, index_col=0)
    if profiles.empty or profiles.shape[1] == 0:
        raise ValueError(f"Reference profile table {path} is empty")
    try:
        profiles = profiles.astype(float)
    except ValueError as e:
        raise ValueError(f"Reference profile table {path} has non-numeric values: {e}") from e
    profiles.index = profiles.index.astype(str)
    profiles.columns = profiles.columns.astype(str)
    if not profiles.index.is_unique:
        n_dup = int(profiles.index.duplicated().sum())
        logger.warning("Dropping %d duplicated genes from reference profiles", n_dup)
        profiles = profiles[~profiles.index.duplicated(keep="first")]
    logger.info("Loaded reference profiles: %d genes x %d labels", *profiles.shape)
    return profiles


def _get_matrix(adata, layer: Optional[str] = None):
    if layer is None:
        return adata.X
    if layer not in adata.layers:
        raise KeyError(f"Layer '{layer}' not found in AnnData (available: {list(adata.layers.keys())})")
    return adata.layers[layer]


def build_reference_profiles(
    adata,
    label_column: str,
    layer: Optional[str] = None,
    min_cells: int = 1,
) -> pd.DataFrame:
    """Average expression per label of an annotated reference AnnData.

    Parameters
    ----------
    adata : AnnData
        Reference cells with a label column in ``obs``
    label_column : str
        Label column
    layer : str, optional
        Expression layer; ``X`` when None
    min_cells : int
        Labels with fewer cells are left out

    Returns
    -------
    pd.DataFrame
        Genes x labels mean expression.
    """
    require_columns(adata.obs, [label_column], where="reference obs")
    matrix = _get_matrix(adata, layer)
    labels = adata.obs[label_column].astype(object)

    profiles = {}
    for label in sorted(labels.dropna().unique(), key=str):
        mask = (labels == label).to_numpy()
        if mask.sum() < min_cells:
            logger.info("Skipping reference label '%s' with %d cells", label, mask.sum())
            continue
        means = matrix[mask].mean(axis=0)
        profiles[str(label)] = np.asarray(means).ravel()

    if not profiles:
        raise ValueError(f"No reference label in '{label_column}' has at least {min_cells} cells")
    return pd.DataFrame(profiles, index=adata.var_names.astype(str))


def _prepare_reference(reference: np.ndarray, method: str) -> np.ndarray:
    """Rank (for spearman), center and scale reference columns to unit norm."""
    if method == "spearman":
        reference = rankdata(reference, axis=0)
    centered = reference - reference.mean(axis=0, keepdims=True)
    norms = np.linalg.norm(centered, axis=0, keepdims=True)
    with np.errstate(divide="ignore", invalid="ignore"):
        scaled = np.where(norms > 0, centered / norms, 0.0)
    return scaled


def _score_chunk(chunk: np.ndarray, reference: np.ndarray, method: str) -> np.ndarray:
    """Correlate every row of chunk with every column of a prepared reference.

    Cells with constant expression over the shared genes score 0.
    """
    if method == "spearman":
        chunk = rankdata(chunk, axis=1)
    centered = chunk - chunk.mean(axis=1, keepdims=True)
    norms = np.linalg.norm(centered, axis=1, keepdims=True)
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = (centered @ reference) / norms
    scores[~np.isfinite(scores)] = 0.0
    return scores


def _iter_chunks(matrix, gene_idx: np.ndarray, chunk_size: int) -> Iterator[np.ndarray]:
    """Yield dense float blocks of at most chunk_size cells, one at a time."""
    for start in range(0, matrix.shape[0], chunk_size):
        block = matrix[start:start + chunk_size][:, gene_idx]
        block = block.toarray() if sparse.issparse(block) else np.asarray(block)
        yield block.astype(float, copy=False)


def score_cells(
    adata,
    profiles: pd.DataFrame,
    method: str = "spearman",
    threads: int = 1,
    chunk_size: int = 2000,
    layer: Optional[str] = None,
) -> pd.DataFrame:
    """Score every cell against every reference label.

    Parameters
    ----------
    adata : AnnData
        Query cells; ``var_names`` must use the same gene naming as profiles
    profiles : pd.DataFrame
        Genes x labels reference profiles
    method : str
        ``spearman`` or ``pearson``
    threads : int
        Worker processes; 1 scores serially
    chunk_size : int
        Cells per chunk
    layer : str, optional
        Expression layer; ``X`` when None

    Returns
    -------
    pd.DataFrame
        Cells x labels scores in [-1, 1], indexed by ``adata.obs_names``.

    Raises
    ------
    ValueError
        If query and reference share no genes.
    """
    query_genes = pd.Index(adata.var_names.astype(str))
    shared = profiles.index[profiles.index.isin(query_genes)]
    if len(shared) == 0:
        raise ValueError(
            "Query and reference share no genes; check that both use the same gene naming"
        )
    if len(shared) < 0.5 * len(profiles.index):
        logger.warning(
            "Only %d/%d reference genes found in query", len(shared), len(profiles.index)
        )

    gene_idx = query_genes.get_indexer(shared)
    reference = _prepare_reference(profiles.loc[shared].to_numpy(dtype=float), method)
    matrix = _get_matrix(adata, layer)
    n_chunks = math.ceil(adata.n_obs / chunk_size)
    chunks = _iter_chunks(matrix, gene_idx, chunk_size)

    logger.info(
        "Scoring %d cells against %d labels over %d genes (%s, %d chunks, %d threads)",
        adata.n_obs, profiles.shape[1], len(shared), method, n_chunks, threads,
    )
    start_time = time.time()

    if threads <= 1 or n_chunks <= 1:
        results = [_score_chunk(chunk, reference, method) for chunk in chunks]
    else:
        results = Parallel(n_jobs=threads, backend="loky")(
            delayed(_score_chunk)(chunk, reference, method) for chunk in chunks
        )

    logger.info("Scoring completed in %.2f sec", time.time() - start_time)

    scores = np.vstack(results) if results else np.empty((0, profiles.shape[1]))
    return pd.DataFrame(scores, index=adata.obs_names.copy(), columns=profiles.columns.copy())
