"""Download data releases from S3 with the AWS CLI.

The AWS CLI does the transfer; this module only builds its arguments,
runs it and keeps the ``current`` symlink pointing at the newest release.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .locator import FORMAT_EXTENSIONS, PROCESS_STAGES, normalize_format

logger = logging.getLogger(__name__)

RELEASE_BUCKET = "openscpca-data-release"
TEST_BUCKET = "openscpca-test-data-release-public-access"

RELEASE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
METADATA_PATTERNS = ["*_metadata.tsv", "*.json"]


class DownloadError(RuntimeError):
    """Raised when the AWS CLI exits with a non-zero status."""

    def __init__(self, command: List[str], returncode: int, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        message = f"Command failed with exit code {returncode}: {' '.join(command)}"
        if stderr:
            message += f"\n{stderr.strip()[-1000:]}"
        super().__init__(message)


@dataclass
class DownloadOptions:
    """What to download and where.

    Attributes
    ----------
    data_dir : Path
        Local root data directory
    release : str, optional
        Release date (``YYYY-MM-DD``); the latest release when None
    formats : List[str]
        ``SCE`` and/or ``AnnData``
    process_stages : List[str]
        Library stages to download
    projects : List[str]
        Restrict to these project ids; all projects when empty
    test_data : bool
        Use the simulated test-data bucket
    metadata_only : bool
        Only download metadata tables
    dryrun : bool
        Pass ``--dryrun`` to ``aws s3 sync``
    profile : str, optional
        AWS CLI profile
    """

    data_dir: Path = Path("data")
    release: Optional[str] = None
    formats: List[str] = field(default_factory=lambda: ["SCE"])
    process_stages: List[str] = field(default_factory=lambda: ["processed"])
    projects: List[str] = field(default_factory=list)
    test_data: bool = False
    metadata_only: bool = False
    dryrun: bool = False
    profile: Optional[str] = None

    def __post_init__(self) -> None:
        self.data_dir = Path(self.data_dir)
        self.formats = [normalize_format(f) for f in self.formats]
        unknown = [s for s in self.process_stages if s not in PROCESS_STAGES]
        if unknown:
            raise ValueError(f"Unknown process stages {unknown}. Choose from {PROCESS_STAGES}")
        if self.release is not None and not RELEASE_PATTERN.match(self.release):
            raise ValueError(f"Release must be a YYYY-MM-DD date, got '{self.release}'")

    @property
    def bucket(self) -> str:
        return TEST_BUCKET if self.test_data else RELEASE_BUCKET


def _profile_args(profile: Optional[str]) -> List[str]:
    return ["--profile", profile] if profile else []


def list_releases(options: DownloadOptions) -> List[str]:
    """Release dates available in the bucket, oldest first."""
    cmd = ["aws", "s3", "ls", f"s3://{options.bucket}/"] + _profile_args(options.profile)
    if options.test_data:
        cmd.append("--no-sign-request")

    result = subprocess.run(cmd, capture_output=True, text=True, check=False)
    if result.returncode != 0:
        raise DownloadError(cmd, result.returncode, result.stderr)

    releases = []
    for line in result.stdout.splitlines():
        # "                           PRE 2024-05-01/"
        name = line.strip().split()[-1].rstrip("/") if line.strip() else ""
        if RELEASE_PATTERN.match(name):
            releases.append(name)
    return sorted(releases)


def resolve_release(options: DownloadOptions) -> str:
    if options.release:
        return options.release
    releases = list_releases(options)
    if not releases:
        raise DownloadError(["aws", "s3", "ls", f"s3://{options.bucket}/"], 1, "No releases found")
    logger.info("Using latest release %s", releases[-1])
    return releases[-1]


def library_patterns(options: DownloadOptions) -> List[str]:
    """``--include`` globs for the requested formats and stages."""
    patterns: List[str] = []
    if options.metadata_only:
        return patterns
    for fmt in options.formats:
        ext = FORMAT_EXTENSIONS[fmt]
        for stage in options.process_stages:
            patterns.append(f"*_{stage}*{ext}")
    return patterns


def build_download_command(options: DownloadOptions, release: Optional[str] = None) -> List[str]:
    """Build the ``aws s3 sync`` command for a download.

    Parameters
    ----------
    options : DownloadOptions
        Download settings
    release : str, optional
        Release to sync; ``options.release`` when None

    Returns
    -------
    List[str]
        Arguments suitable for ``subprocess.run``

    Example
    -------
    >>> cmd = build_download_command(DownloadOptions(release="2024-05-01", formats=["AnnData"]))
    >>> cmd[:3]
    ['aws', 's3', 'sync']
    """
    release = release or options.release
    if release is None:
        raise ValueError("A release is required to build the download command")

    source = f"s3://{options.bucket}/{release}"
    destination = options.data_dir / release

    cmd = ["aws", "s3", "sync", source, str(destination), "--exclude", "*"]
    for pattern in METADATA_PATTERNS:
        cmd += ["--include", pattern]
    for pattern in library_patterns(options):
        if options.projects:
            cmd += [arg for project in options.projects for arg in ("--include", f"{project}/{pattern}")]
        else:
            cmd += ["--include", pattern]

    if options.test_data:
        cmd.append("--no-sign-request")
    if options.dryrun:
        cmd.append("--dryrun")
    cmd += _profile_args(options.profile)
    return cmd


def update_current_link(data_dir: Path, release: str) -> Path:
    """Point ``<data_dir>/current`` at ``release``."""
    link = Path(data_dir) / "current"
    if link.is_symlink() or link.is_file():
        link.unlink()
    elif link.exists():
        raise FileExistsError(f"{link} exists and is not a symlink")
    os.symlink(release, link, target_is_directory=True)
    logger.info("Linked %s -> %s", link, release)
    return link


def download_data(options: DownloadOptions) -> Path:
    """Sync a release into ``options.data_dir``.

    Returns
    -------
    Path
        Local release directory

    Raises
    ------
    DownloadError
        If the AWS CLI fails.
    """
    release = resolve_release(options)
    cmd = build_download_command(options, release)
    destination = options.data_dir / release

    logger.info("Downloading %s to %s", f"s3://{options.bucket}/{release}", destination)
    logger.debug("Running: %s", " ".join(cmd))

    result = subprocess.run(cmd, capture_output=True, text=True, check=False)
    if result.stdout:
        logger.info(result.stdout.strip())
    if result.returncode != 0:
        raise DownloadError(cmd, result.returncode, result.stderr)

    if options.dryrun:
        logger.info("Dry run; not updating the current link")
    else:
        options.data_dir.mkdir(parents=True, exist_ok=True)
        update_current_link(options.data_dir, release)
    return destination
