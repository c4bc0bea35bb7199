"""
Tests for dataset naming and download path resolution.
"""

from dataset_watcher.utils.path import (
    dataset_filename,
    dataset_url,
    resolve_download_path,
)


def test_dataset_url_encodes_the_space():
    assert (
        dataset_url("https://www.justice.gov/epstein/files/", 9)
        == "https://www.justice.gov/epstein/files/DataSet%209.zip"
    )
    assert dataset_url("http://host/x/", 123).endswith("/x/DataSet%20123.zip")


def test_dataset_filename_is_unencoded():
    assert dataset_filename(10) == "DataSet 10.zip"


def test_resolve_uniquifies_existing_names(tmp_path):
    assert resolve_download_path(tmp_path, "DataSet 9.zip") == tmp_path / "DataSet 9.zip"

    (tmp_path / "DataSet 9.zip").touch()
    assert resolve_download_path(tmp_path, "DataSet 9.zip") == tmp_path / "DataSet 9 (1).zip"

    (tmp_path / "DataSet 9 (1).zip.part").touch()
    assert resolve_download_path(tmp_path, "DataSet 9.zip") == tmp_path / "DataSet 9 (2).zip"


def test_resolve_overwrite_keeps_name(tmp_path):
    (tmp_path / "DataSet 9.zip").touch()

    assert (
        resolve_download_path(tmp_path, "DataSet 9.zip", "overwrite")
        == tmp_path / "DataSet 9.zip"
    )


def test_resolve_sanitizes_path_separators(tmp_path):
    path = resolve_download_path(tmp_path, "../evil/DataSet 9.zip")

    assert path.parent == tmp_path
