"""Tests for the FileComparator class."""

import json
from pathlib import Path

from packsync.backend.comparator import FileComparator
from packsync.backend.scanner import LocalFile
from packsync.manifest import parse_manifest
from packsync.sync.diff import DiffFile, FileStatus


def _manifest(*files):
    return parse_manifest(
        json.dumps({"packageName": "Pack", "version": "1", "files": list(files)})
    )


def _entry(path, hash="h1", size=10, **extra):
    data = {
        "name": path.rsplit("/", 1)[-1],
        "relativePath": path,
        "hash": hash,
        "size": size,
        "downloadUrl": f"https://example.com/{path}",
    }
    data.update(extra)
    return data


def _local(relative_path, hash="h1", size=10):
    return LocalFile(
        path=Path(f"/target/{relative_path}"),
        relative_path=relative_path,
        size=size,
        hash=hash,
    )


class TestCompareSingleFile:
    """Tests for the status of manifest entries."""

    def test_missing_file_is_new(self):
        manifest = _manifest(_entry("mods/a.jar"))

        assert FileComparator().compare(manifest, {}) == [
            DiffFile("mods/a.jar", FileStatus.NEW)
        ]

    def test_matching_hash_is_unchanged(self):
        manifest = _manifest(_entry("mods/a.jar"))
        local = {"mods/a.jar": _local("mods/a.jar", size=999)}

        diff = FileComparator().compare(manifest, local)

        assert diff[0].status == FileStatus.UNCHANGED

    def test_different_hash_is_modified(self):
        manifest = _manifest(_entry("mods/a.jar"))
        local = {"mods/a.jar": _local("mods/a.jar", hash="other")}

        diff = FileComparator().compare(manifest, local)

        assert diff[0].status == FileStatus.MODIFIED

    def test_excluded_wins_over_everything(self):
        """An excluded entry is Excluded whether present, missing or an archive."""
        manifest = _manifest(
            _entry("mods/a.jar"),
            _entry("mods/b.jar"),
            _entry("pack.zip", fileType="zip"),
        )
        local = {"mods/a.jar": _local("mods/a.jar", hash="other")}

        diff = FileComparator().compare(
            manifest, local, excluded=["mods/a.jar", "mods/b.jar", "pack.zip"]
        )

        assert {d.status for d in diff} == {FileStatus.EXCLUDED}

    def test_archives_are_always_force_updated(self):
        manifest = _manifest(
            _entry("pack.zip", fileType="zip"),
            _entry("update.zip", fileType="update_package"),
        )
        local = {"pack.zip": _local("pack.zip")}

        diff = FileComparator().compare(manifest, local)

        assert [d.status for d in diff] == [FileStatus.FORCE_UPDATE] * 2

    def test_hash_check_disabled_compares_size(self):
        manifest = _manifest(_entry("mods/a.jar"), _entry("mods/b.jar"))
        local = {
            "mods/a.jar": _local("mods/a.jar", hash=None, size=10),
            "mods/b.jar": _local("mods/b.jar", hash=None, size=11),
        }

        diff = FileComparator(disable_hash_check=True).compare(manifest, local)

        assert [d.status for d in diff] == [FileStatus.UNCHANGED, FileStatus.MODIFIED]

    def test_both_checks_disabled_means_existence_only(self):
        manifest = _manifest(_entry("mods/a.jar"), _entry("mods/b.jar"))
        local = {"mods/a.jar": _local("mods/a.jar", hash="x", size=1)}

        diff = FileComparator(disable_hash_check=True, disable_size_check=True).compare(
            manifest, local
        )

        assert [d.status for d in diff] == [FileStatus.UNCHANGED, FileStatus.NEW]

    def test_disabled_hash_value_falls_back_to_size(self):
        """Entries exported without hashes are compared by size."""
        manifest = _manifest(_entry("mods/a.jar", hash="DISABLED", size=10))
        local = {"mods/a.jar": _local("mods/a.jar", hash="anything", size=10)}

        diff = FileComparator().compare(manifest, local)

        assert diff[0].status == FileStatus.UNCHANGED


class TestExtraFiles:
    """Tests for local files the manifest does not list."""

    def test_extra_files_follow_manifest_entries_sorted(self):
        manifest = _manifest(_entry("mods/b.jar"), _entry("mods/a.jar"))
        local = {
            "mods/z.jar": _local("mods/z.jar"),
            "mods/c.jar": _local("mods/c.jar"),
        }

        diff = FileComparator().compare(manifest, local)

        assert [d.path for d in diff] == [
            "mods/b.jar",
            "mods/a.jar",
            "mods/c.jar",
            "mods/z.jar",
        ]
        assert [d.status for d in diff[2:]] == [FileStatus.EXTRA, FileStatus.EXTRA]

    def test_excluded_extra_file_is_not_reported(self):
        manifest = _manifest(_entry("mods/a.jar"))
        local = {"mods/keep.jar": _local("mods/keep.jar")}

        diff = FileComparator().compare(manifest, local, excluded=["mods\\keep.jar"])

        assert [d.path for d in diff] == ["mods/a.jar"]

    def test_each_path_appears_once(self):
        manifest = _manifest(_entry("mods/a.jar"), _entry("config/b.cfg"))
        local = {
            "mods/a.jar": _local("mods/a.jar"),
            "mods/old.jar": _local("mods/old.jar"),
        }

        diff = FileComparator().compare(manifest, local)
        paths = [d.path for d in diff]

        assert len(paths) == len(set(paths)) == 3
