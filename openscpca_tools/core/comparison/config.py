"""Configuration for label comparison."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml


@dataclass
class HeatmapConfig:
    """Heatmap rendering settings.

    Attributes
    ----------
    cmap : str
        Colormap name
    annotate : bool
        Write the Jaccard index in each cell
    fmt : str
        Number format for annotations
    figsize : Tuple[float, float], optional
        Figure size; sized from the matrix shape when None
    dpi : int
        Figure resolution
    file_format : str
        Output format (png or pdf)
    """

    cmap: str = "viridis"
    annotate: bool = True
    fmt: str = ".2f"
    figsize: Optional[Tuple[float, float]] = None
    dpi: int = 200
    file_format: str = "png"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HeatmapConfig":
        figsize = data.get("figsize")
        return cls(
            cmap=data.get("cmap", "viridis"),
            annotate=data.get("annotate", True),
            fmt=data.get("fmt", ".2f"),
            figsize=tuple(figsize) if figsize else None,
            dpi=data.get("dpi", 200),
            file_format=data.get("file_format", "png"),
        )


@dataclass
class ComparisonConfig:
    """Settings for comparing two categorical labelings of the same cells.

    Attributes
    ----------
    label_a : str
        Column with the first labeling (heatmap rows)
    label_b : str
        Column with the second labeling (heatmap columns)
    na_label : str
        Label given to cells with a missing annotation
    drop_na : bool
        Drop cells missing either label instead of relabeling them
    min_cells : int
        Labels assigned to fewer cells are dropped before comparison
    heatmap : HeatmapConfig
        Heatmap rendering settings
    """

    label_a: str = "label_a"
    label_b: str = "label_b"
    na_label: str = "Unknown"
    drop_na: bool = False
    min_cells: int = 0
    heatmap: HeatmapConfig = field(default_factory=HeatmapConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComparisonConfig":
        return cls(
            label_a=data.get("label_a", "label_a"),
            label_b=data.get("label_b", "label_b"),
            na_label=data.get("na_label", "Unknown"),
            drop_na=data.get("drop_na", False),
            min_cells=int(data.get("min_cells", 0)),
            heatmap=HeatmapConfig.from_dict(data.get("heatmap", {}) or {}),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "ComparisonConfig":
        """Load configuration from a YAML file.

        The settings may sit at the top level or under a ``comparison`` key.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data.get("comparison", data))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label_a": self.label_a,
            "label_b": self.label_b,
            "na_label": self.na_label,
            "drop_na": self.drop_na,
            "min_cells": self.min_cells,
            "heatmap": {
                "cmap": self.heatmap.cmap,
                "annotate": self.heatmap.annotate,
                "fmt": self.heatmap.fmt,
                "figsize": list(self.heatmap.figsize) if self.heatmap.figsize else None,
                "dpi": self.heatmap.dpi,
                "file_format": self.heatmap.file_format,
            },
        }
