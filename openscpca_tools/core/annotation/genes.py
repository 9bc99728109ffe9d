"""Gene identifier handling for query AnnData objects.

ScPCA objects index genes by Ensembl id and keep symbols in a ``var``
column. Reference profiles are usually keyed by symbol, so queries are
converted before scoring.
"""

from __future__ import annotations

import logging

import pandas as pd

logger = logging.getLogger(__name__)


def convert_ids_to_symbols(adata, symbol_column: str = "gene_symbol"):
    """Return a copy of adata with gene symbols as ``var_names``.

    Ids without a symbol keep their original id. Duplicated symbols are
    made unique with anndata's ``-1``, ``-2`` suffixes. The original ids are
    kept in ``var["gene_ids"]``.

    Parameters
    ----------
    adata : AnnData
        Query object indexed by gene id
    symbol_column : str
        ``var`` column holding gene symbols

    Returns
    -------
    AnnData
        Converted copy.

    Raises
    ------
    KeyError
        If ``symbol_column`` is not in ``adata.var``.
    """
    if symbol_column not in adata.var.columns:
        raise KeyError(f"Column '{symbol_column}' not found in adata.var")

    converted = adata.copy()
    ids = pd.Index(converted.var_names.astype(str))
    symbols = converted.var[symbol_column].astype(object)

    missing = symbols.isna() | (symbols.astype(str).str.strip() == "")
    new_names = pd.Index(
        [gene_id if is_missing else str(symbol) for gene_id, symbol, is_missing in zip(ids, symbols, missing)]
    )

    if "gene_ids" not in converted.var.columns:
        converted.var["gene_ids"] = ids.to_numpy()
    converted.var_names = new_names
    if not converted.var_names.is_unique:
        n_dup = int(converted.var_names.duplicated().sum())
        logger.info("Making %d duplicated gene symbols unique", n_dup)
        converted.var_names_make_unique()

    logger.info(
        "Converted %d/%d gene ids to symbols (%d kept their id)",
        int((~missing).sum()), len(ids), int(missing.sum()),
    )
    return converted
