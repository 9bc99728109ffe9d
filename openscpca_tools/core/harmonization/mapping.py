"""Harmonization of module-specific cell-type labels.

Different annotation methods name the same population differently
("T cells", "T-cell", "CD4+ T cell"...). A HarmonizationMap projects every
method's labels onto one shared vocabulary so labelings can be compared or
combined into a consensus.

Labels absent from the map become the unknown label; there is no fuzzy
matching.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd
import yaml

from openscpca_tools.io.tables import read_table, require_columns

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

DEFAULT_UNKNOWN_LABEL = "Unknown"

_WHITESPACE = re.compile(r"\s+")


def normalize_label(label: Any) -> Optional[str]:
    """Strip and collapse whitespace in a label; missing values stay None.

    Examples
    --------
    >>> normalize_label("  T   cell ")
    'T cell'
    """
    if label is None or (not isinstance(label, str) and pd.isna(label)):
        return None
    text = _WHITESPACE.sub(" ", str(label)).strip()
    return text or None


@dataclass
class HarmonizationMap:
    """Lookup from original labels to a harmonized vocabulary.

    Attributes
    ----------
    mapping : Dict[str, str]
        Original label -> harmonized label
    unknown_label : str
        Label given to missing or unmapped labels
    case_sensitive : bool
        Match original labels case-sensitively
    name : str
        Name used in logs and provenance
    """

    mapping: Dict[str, str] = field(default_factory=dict)
    unknown_label: str = DEFAULT_UNKNOWN_LABEL
    case_sensitive: bool = False
    name: str = "harmonization"

    def __post_init__(self) -> None:
        self._lookup: Dict[str, str] = {}
        for original, harmonized in self.mapping.items():
            key = self._key(original)
            value = normalize_label(harmonized)
            if key is None or value is None:
                continue
            if key in self._lookup and self._lookup[key] != value:
                raise ValueError(
                    f"Label '{original}' maps to both '{self._lookup[key]}' and '{value}'"
                )
            self._lookup[key] = value

    def _key(self, label: Any) -> Optional[str]:
        text = normalize_label(label)
        if text is None:
            return None
        return text if self.case_sensitive else text.casefold()

    @property
    def vocabulary(self) -> List[str]:
        """Sorted harmonized labels the map can produce."""
        return sorted(set(self._lookup.values()))

    def lookup(self, label: Any) -> str:
        """Harmonize one label."""
        key = self._key(label)
        if key is None:
            return self.unknown_label
        return self._lookup.get(key, self.unknown_label)

    def unmapped(self, labels: pd.Series) -> List[str]:
        """Distinct non-missing labels with no entry in the map."""
        result = []
        for label in pd.unique(labels.dropna()):
            key = self._key(label)
            if key is not None and key not in self._lookup:
                result.append(str(label))
        return sorted(result)

    def harmonize(self, labels: pd.Series) -> pd.Series:
        """Harmonize a series of labels.

        Each distinct unmapped label is logged once at WARNING level.

        Returns
        -------
        pd.Series
            Harmonized labels with the same index.
        """
        missing = self.unmapped(labels)
        if missing:
            logger.warning(
                "%s: %d labels not in map, set to '%s': %s",
                self.name, len(missing), self.unknown_label, missing,
            )
        uniques = pd.unique(labels.astype(object))
        translation = {label: self.lookup(label) for label in uniques if not pd.isna(label)}
        result = labels.astype(object).map(translation).fillna(self.unknown_label)
        return result.astype(str).rename(labels.name)

    def to_frame(self) -> pd.DataFrame:
        """Two-column table of the map, sorted by harmonized label."""
        df = pd.DataFrame(
            sorted(self.mapping.items(), key=lambda kv: (str(kv[1]), str(kv[0]))),
            columns=["original_label", "harmonized_label"],
        )
        return df

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HarmonizationMap":
        """Create a map from a dictionary.

        Two layouts are accepted under ``labels``:

        - ``{original: harmonized}``
        - ``{harmonized: [original, ...]}``

        Entries with an empty (null) value are skipped, which leaves those
        originals unmapped.
        """
        labels = data.get("labels", {}) or {}
        mapping: Dict[str, str] = {}
        for key, value in labels.items():
            if isinstance(value, (list, tuple)):
                for original in value:
                    if normalize_label(original) is not None:
                        mapping[str(original)] = str(key)
                mapping.setdefault(str(key), str(key))
            elif normalize_label(value) is not None:
                mapping[str(key)] = str(value)
        return cls(
            mapping=mapping,
            unknown_label=data.get("unknown_label", DEFAULT_UNKNOWN_LABEL),
            case_sensitive=data.get("case_sensitive", False),
            name=data.get("name", "harmonization"),
        )

    @classmethod
    def from_yaml(cls, path: PathLike) -> "HarmonizationMap":
        """Load a map from YAML (see :meth:`from_dict` for the layout)."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        data.setdefault("name", Path(path).stem)
        return cls.from_dict(data)

    @classmethod
    def from_table(
        cls,
        path: PathLike,
        original_column: str = "original_label",
        harmonized_column: str = "harmonized_label",
        unknown_label: str = DEFAULT_UNKNOWN_LABEL,
        case_sensitive: bool = False,
    ) -> "HarmonizationMap":
        """Load a map from a TSV/CSV lookup table.

        Rows with an empty harmonized label are skipped, which leaves those
        originals unmapped.
        """
        df = read_table(path, dtype=str)
        require_columns(df, [original_column, harmonized_column], where=str(path))
        df = df.dropna(subset=[original_column, harmonized_column])
        return cls(
            mapping=dict(zip(df[original_column], df[harmonized_column])),
            unknown_label=unknown_label,
            case_sensitive=case_sensitive,
            name=Path(path).stem,
        )

    @classmethod
    def load(cls, path: PathLike, **kwargs) -> "HarmonizationMap":
        """Load from YAML or a lookup table depending on the suffix."""
        if Path(path).suffix.lower() in (".yaml", ".yml"):
            return cls.from_yaml(path)
        return cls.from_table(path, **kwargs)


def harmonize_labels(
    df: pd.DataFrame,
    column: str,
    hmap: HarmonizationMap,
    output_column: Optional[str] = None,
) -> pd.DataFrame:
    """Add a harmonized copy of a label column.

    Parameters
    ----------
    df : pd.DataFrame
        Cell table
    column : str
        Label column to harmonize
    hmap : HarmonizationMap
        Lookup to apply
    output_column : str, optional
        Name of the new column. Default: ``<column>_harmonized``

    Returns
    -------
    pd.DataFrame
        Copy of df with the new column.
    """
    require_columns(df, [column], where="cell table")
    output_column = output_column or f"{column}_harmonized"
    result = df.copy()
    result[output_column] = hmap.harmonize(df[column])
    return result


def summarize_harmonization(
    df: pd.DataFrame,
    original: str,
    harmonized: str,
) -> pd.DataFrame:
    """Count cells for every original -> harmonized pair.

    Returns
    -------
    pd.DataFrame
        Columns ``original_label``, ``harmonized_label``, ``n_cells``, sorted
        by harmonized label then descending count.
    """
    require_columns(df, [original, harmonized], where="cell table")
    pairs = pd.DataFrame({
        "original_label": df[original].astype(object).fillna("NA").astype(str),
        "harmonized_label": df[harmonized].astype(str),
    })
    summary = (
        pairs.groupby(["original_label", "harmonized_label"], observed=True)
        .size()
        .rename("n_cells")
        .reset_index()
    )
    return summary.sort_values(
        ["harmonized_label", "n_cells", "original_label"], ascending=[True, False, True]
    ).reset_index(drop=True)
