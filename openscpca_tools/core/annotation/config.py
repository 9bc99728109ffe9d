"""Configuration for reference-based cell annotation."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

SCORING_METHODS = ("spearman", "pearson")


@dataclass
class AnnotationConfig:
    """Settings for scoring cells against reference profiles.

    Attributes
    ----------
    threads : int
        Worker processes for scoring; 1 runs serially
    seed : int
        Seed for the global numpy RNG, set before scoring and kept in provenance
    method : str
        Correlation used for scores: spearman or pearson
    chunk_size : int
        Cells per scoring chunk
    symbol_column : str
        ``var`` column with gene symbols; None skips id conversion
    layer : str, optional
        Expression layer to score; ``X`` when None
    nmads : float
        MADs below the per-label median of (best - median score) beyond
        which an assignment is pruned
    min_diff_med : float, optional
        Prune when best - median score falls below this value
    min_diff_next : float
        Prune when delta_next falls below this value
    """

    threads: int = 4
    seed: int = 2025
    method: str = "spearman"
    chunk_size: int = 2000
    symbol_column: Optional[str] = "gene_symbol"
    layer: Optional[str] = None
    nmads: float = 3.0
    min_diff_med: Optional[float] = None
    min_diff_next: float = 0.0

    def __post_init__(self) -> None:
        if self.method not in SCORING_METHODS:
            raise ValueError(f"Unknown scoring method '{self.method}', expected one of {SCORING_METHODS}")
        if self.threads < 1:
            raise ValueError("threads must be at least 1")
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnnotationConfig":
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_yaml(cls, path: Path) -> "AnnotationConfig":
        """Load from YAML; settings may sit under an ``annotation`` key."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data.get("annotation", data))

    def to_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}
