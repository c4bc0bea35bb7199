"""
Utilities for building dataset URLs and download file paths.
"""

from pathlib import Path
from urllib.parse import quote

from pathvalidate import sanitize_filename

DATASET_PREFIX = "DataSet "
DATASET_EXTENSION = ".zip"


def dataset_filename(index: int) -> str:
    """Returns the unencoded archive name for an index, e.g. 'DataSet 9.zip'."""
    return f"{DATASET_PREFIX}{index}{DATASET_EXTENSION}"


def dataset_url(base_url: str, index: int) -> str:
    """
    Builds the candidate URL for an index.

    The space in the archive name is sent percent-encoded, so index 9 becomes
    '<base_url>DataSet%209.zip'.
    """
    return f"{base_url}{quote(dataset_filename(index))}"


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def resolve_download_path(
    directory: Path, suggested_filename: str, conflict_policy: str = "uniquify"
) -> Path:
    """
    Picks the final path for a download inside `directory`.

    With the 'uniquify' policy an existing file is never replaced: the first free
    name of the form 'name (1).ext', 'name (2).ext', ... is used instead. With
    'overwrite' the suggested name is returned as-is.
    """
    filename = sanitize_filename(suggested_filename, platform="auto") or "download"
    candidate = directory / filename
    if conflict_policy == "overwrite":
        return candidate

    stem, suffix = candidate.stem, candidate.suffix
    counter = 1
    while candidate.exists() or candidate.with_name(candidate.name + ".part").exists():
        candidate = directory / f"{stem} ({counter}){suffix}"
        counter += 1
    return candidate
