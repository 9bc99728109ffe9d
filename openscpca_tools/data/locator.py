"""Locate files in a downloaded data release.

A release directory is laid out as::

    <data_dir>/<release>/<project_id>/<sample_id>/<library_id>_<stage>_<ext>

for example ``data/current/SCPCP000001/SCPCS000001/SCPCL000001_processed_rna.h5ad``
(AnnData) or ``.../SCPCL000001_processed.rds`` (SingleCellExperiment).
``current`` is a symlink to the most recently downloaded release.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

import pandas as pd

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

FORMAT_EXTENSIONS = {
    "SCE": ".rds",
    "AnnData": ".h5ad",
}
PROCESS_STAGES = ("unfiltered", "filtered", "processed")

PROJECT_PATTERN = re.compile(r"^SCPCP\d+$")
SAMPLE_PATTERN = re.compile(r"^SCPCS\d+$")
LIBRARY_FILE_PATTERN = re.compile(
    r"^(?P<library_id>SCPCL\d+)_(?P<stage>unfiltered|filtered|processed)"
    r"(?:_(?P<modality>[A-Za-z0-9]+))?(?P<ext>\.rds|\.h5ad)$"
)


def normalize_format(fmt: str) -> str:
    """Return the canonical format name (``SCE`` or ``AnnData``)."""
    for name in FORMAT_EXTENSIONS:
        if fmt.lower() == name.lower():
            return name
    raise ValueError(f"Unknown data format '{fmt}'. Choose from {list(FORMAT_EXTENSIONS)}")


@dataclass
class DataLocator:
    """Find project, sample and library files inside a release directory.

    Attributes
    ----------
    data_dir : Path
        Root data directory holding release directories
    release : str
        Release name, or ``current`` for the symlinked latest release
    """

    data_dir: Path
    release: str = "current"

    def __post_init__(self) -> None:
        self.data_dir = Path(self.data_dir)

    @property
    def release_dir(self) -> Path:
        return self.data_dir / self.release

    def _require_release(self) -> Path:
        if not self.release_dir.exists():
            raise FileNotFoundError(
                f"Release directory not found: {self.release_dir}. Download data first."
            )
        return self.release_dir

    def list_projects(self) -> List[str]:
        root = self._require_release()
        return sorted(p.name for p in root.iterdir() if p.is_dir() and PROJECT_PATTERN.match(p.name))

    def list_samples(self, project_id: str) -> List[str]:
        project_dir = self._require_release() / project_id
        if not project_dir.is_dir():
            raise FileNotFoundError(f"Project not found in release: {project_dir}")
        return sorted(p.name for p in project_dir.iterdir() if p.is_dir() and SAMPLE_PATTERN.match(p.name))

    def library_path(
        self,
        project_id: str,
        sample_id: str,
        library_id: str,
        fmt: str = "AnnData",
        process_stage: str = "processed",
        modality: str = "rna",
    ) -> Path:
        """Path of one library file; the file need not exist.

        SCE files carry no modality suffix; AnnData files do.
        """
        fmt = normalize_format(fmt)
        if process_stage not in PROCESS_STAGES:
            raise ValueError(f"Unknown process stage '{process_stage}'. Choose from {PROCESS_STAGES}")
        if fmt == "SCE":
            filename = f"{library_id}_{process_stage}.rds"
        else:
            filename = f"{library_id}_{process_stage}_{modality}.h5ad"
        return self.release_dir / project_id / sample_id / filename

    def find_files(
        self,
        fmt: str = "AnnData",
        process_stage: Optional[str] = "processed",
        project_id: Optional[str] = None,
    ) -> pd.DataFrame:
        """Table of library files in the release.

        Parameters
        ----------
        fmt : str
            ``SCE`` or ``AnnData``
        process_stage : str, optional
            Keep only this stage; all stages when None
        project_id : str, optional
            Restrict to one project

        Returns
        -------
        pd.DataFrame
            Columns ``project_id``, ``sample_id``, ``library_id``, ``stage``,
            ``modality``, ``path``, sorted by project, sample and library.
        """
        fmt = normalize_format(fmt)
        ext = FORMAT_EXTENSIONS[fmt]
        projects = [project_id] if project_id else self.list_projects()

        records = []
        for project in projects:
            for sample in self.list_samples(project):
                for path in sorted((self.release_dir / project / sample).iterdir()):
                    match = LIBRARY_FILE_PATTERN.match(path.name)
                    if not match or match.group("ext") != ext:
                        continue
                    if process_stage and match.group("stage") != process_stage:
                        continue
                    records.append({
                        "project_id": project,
                        "sample_id": sample,
                        "library_id": match.group("library_id"),
                        "stage": match.group("stage"),
                        "modality": match.group("modality"),
                        "path": str(path),
                    })

        columns = ["project_id", "sample_id", "library_id", "stage", "modality", "path"]
        files = pd.DataFrame.from_records(records, columns=columns)
        logger.debug("Found %d %s files in %s", len(files), fmt, self.release_dir)
        return files.sort_values(["project_id", "sample_id", "library_id"]).reset_index(drop=True)
