"""Data release access.

Example Usage
-------------
    >>> from openscpca_tools.data import DataLocator, DownloadOptions, download_data
    >>> download_data(DownloadOptions(test_data=True, formats=["AnnData"]))
    >>> files = DataLocator("data").find_files("AnnData", "processed")
"""

from .download import (
    RELEASE_BUCKET,
    TEST_BUCKET,
    DownloadError,
    DownloadOptions,
    build_download_command,
    download_data,
    library_patterns,
    list_releases,
    resolve_release,
    update_current_link,
)
from .locator import (
    FORMAT_EXTENSIONS,
    PROCESS_STAGES,
    DataLocator,
    normalize_format,
)

__all__ = [
    "RELEASE_BUCKET",
    "TEST_BUCKET",
    "DownloadError",
    "DownloadOptions",
    "build_download_command",
    "download_data",
    "library_patterns",
    "list_releases",
    "resolve_release",
    "update_current_link",
    "FORMAT_EXTENSIONS",
    "PROCESS_STAGES",
    "DataLocator",
    "normalize_format",
]
