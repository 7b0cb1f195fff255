"""Tests for the LocalBackend against a temporary directory."""

import hashlib
import io
import json
import zipfile

import httpx
import pytest

from packsync.backend.base import SyncRequest
from packsync.backend.downloader import FileDownloader
from packsync.backend.local import LocalBackend
from packsync.exceptions import (
    DiffError,
    ExclusionStoreError,
    ManifestFetchError,
    PackageError,
)
from packsync.manifest import parse_manifest
from packsync.sync.diff import DiffFile, FileStatus
from packsync.sync.events import EventName
from packsync.utils import EXCLUSION_FILE_NAME

CONTENT = {
    "mods/a.jar": b"alpha contents",
    "config/b.cfg": b"beta=1\n",
}


def _sha(data):
    return hashlib.sha256(data).hexdigest()


def _entry(path, data=None, **extra):
    data = CONTENT.get(path, b"") if data is None else data
    entry = {
        "name": path.rsplit("/", 1)[-1],
        "relativePath": path,
        "hash": _sha(data),
        "size": len(data),
        "downloadUrl": f"https://files.example.com/{path}",
    }
    entry.update(extra)
    return entry


def _manifest(*entries, **extra):
    data = {"packageName": "Pack", "version": "1.0", "files": list(entries)}
    data.update(extra)
    return parse_manifest(json.dumps(data))


def _write(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def _zip_bytes(members):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in members.items():
            archive.writestr(name, data)
    return buffer.getvalue()


def _backend(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    downloader = FileDownloader(client=client, retry_delay=0)
    return LocalBackend(downloader=downloader, **kwargs)


def _serve(files, calls=None):
    """Handler serving a dict of url path -> bytes."""

    def handler(request):
        path = request.url.path.lstrip("/")
        if calls is not None:
            calls.append(path)
        if path not in files:
            return httpx.Response(404)
        return httpx.Response(200, content=files[path])

    return handler


def _collect(backend):
    events = []
    backend.subscribe(events.append)
    return events


class TestCalculateDiff:
    """Tests for diff calculation on disk."""

    @pytest.mark.asyncio
    async def test_new_unchanged_excluded(self, tmp_path):
        """The same file is New, then Unchanged, then Excluded."""
        backend = LocalBackend()
        manifest = _manifest(_entry("mods/a.jar"))
        request = SyncRequest(manifest, str(tmp_path))

        assert await backend.calculate_diff(request) == [
            DiffFile("mods/a.jar", FileStatus.NEW)
        ]

        _write(tmp_path / "mods" / "a.jar", CONTENT["mods/a.jar"])
        assert (await backend.calculate_diff(request))[0].status == FileStatus.UNCHANGED

        excluded = SyncRequest(manifest, str(tmp_path), excluded_files=("mods/a.jar",))
        assert (await backend.calculate_diff(excluded))[0].status == FileStatus.EXCLUDED

    @pytest.mark.asyncio
    async def test_modified_content(self, tmp_path):
        _write(tmp_path / "mods" / "a.jar", b"tampered")
        request = SyncRequest(_manifest(_entry("mods/a.jar")), str(tmp_path))

        diff = await LocalBackend().calculate_diff(request)

        assert diff[0].status == FileStatus.MODIFIED

    @pytest.mark.asyncio
    async def test_extra_files_only_inside_manifest_directories(self, tmp_path):
        _write(tmp_path / "mods" / "old.jar", b"old")
        _write(tmp_path / "saves" / "world.dat", b"keep me")
        _write(tmp_path / "notes.txt", b"unrelated")
        request = SyncRequest(_manifest(_entry("mods/a.jar")), str(tmp_path))

        diff = await LocalBackend().calculate_diff(request)

        assert diff == [
            DiffFile("mods/a.jar", FileStatus.NEW),
            DiffFile("mods/old.jar", FileStatus.EXTRA),
        ]

    @pytest.mark.asyncio
    async def test_root_level_manifest_file_is_scanned(self, tmp_path):
        _write(tmp_path / "readme.txt", b"hi")
        request = SyncRequest(
            _manifest(_entry("readme.txt", data=b"hi")), str(tmp_path)
        )

        diff = await LocalBackend().calculate_diff(request)

        assert diff == [DiffFile("readme.txt", FileStatus.UNCHANGED)]

    @pytest.mark.asyncio
    async def test_archive_is_force_updated(self, tmp_path):
        _write(tmp_path / "pack.zip", b"zip")
        request = SyncRequest(
            _manifest(_entry("pack.zip", data=b"zip", fileType="zip")), str(tmp_path)
        )

        diff = await LocalBackend().calculate_diff(request)

        assert diff[0].status == FileStatus.FORCE_UPDATE

    @pytest.mark.asyncio
    async def test_hash_override_compares_sizes(self, tmp_path):
        _write(tmp_path / "mods" / "a.jar", b"x" * len(CONTENT["mods/a.jar"]))
        _write(tmp_path / "config" / "b.cfg", b"too long for the manifest")
        manifest = _manifest(_entry("mods/a.jar"), _entry("config/b.cfg"))
        request = SyncRequest(manifest, str(tmp_path), hash_check_override=True)

        diff = await LocalBackend().calculate_diff(request)

        assert [d.status for d in diff] == [FileStatus.UNCHANGED, FileStatus.MODIFIED]

    @pytest.mark.asyncio
    async def test_manifest_flag_disables_hash_check(self, tmp_path):
        _write(tmp_path / "mods" / "a.jar", b"x" * len(CONTENT["mods/a.jar"]))
        manifest = _manifest(_entry("mods/a.jar"), disableHashCheck=True)

        diff = await LocalBackend().calculate_diff(SyncRequest(manifest, str(tmp_path)))

        assert diff[0].status == FileStatus.UNCHANGED

    @pytest.mark.asyncio
    async def test_exclusion_file_is_never_reported(self, tmp_path):
        _write(tmp_path / "mods" / EXCLUSION_FILE_NAME, b"[]")
        _write(tmp_path / EXCLUSION_FILE_NAME, b"[]")
        request = SyncRequest(_manifest(_entry("mods/a.jar")), str(tmp_path))

        diff = await LocalBackend().calculate_diff(request)

        assert [d.path for d in diff] == ["mods/a.jar"]

    @pytest.mark.asyncio
    async def test_missing_target_directory_means_everything_new(self, tmp_path):
        manifest = _manifest(_entry("mods/a.jar"), _entry("config/b.cfg"))
        request = SyncRequest(manifest, str(tmp_path / "does-not-exist"))

        diff = await LocalBackend().calculate_diff(request)

        assert {d.status for d in diff} == {FileStatus.NEW}

    @pytest.mark.asyncio
    async def test_scan_failure_raises_diff_error(self, tmp_path, monkeypatch):
        def broken(*args, **kwargs):
            raise OSError("device not ready")

        backend = LocalBackend()
        monkeypatch.setattr(backend, "_calculate_diff_sync", broken)

        with pytest.raises(DiffError, match="device not ready"):
            await backend.calculate_diff(
                SyncRequest(_manifest(_entry("mods/a.jar")), str(tmp_path))
            )


class TestExclusionPersistence:
    """Tests for the exclusion list file."""

    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path):
        assert await LocalBackend().load_exclusion_list(str(tmp_path)) == []

    @pytest.mark.asyncio
    async def test_save_then_load(self, tmp_path):
        backend = LocalBackend()

        await backend.save_exclusion_list(str(tmp_path), ["config/b.cfg", "mods/a.jar"])

        stored = json.loads((tmp_path / EXCLUSION_FILE_NAME).read_text())
        assert stored == ["config/b.cfg", "mods/a.jar"]
        assert await backend.load_exclusion_list(str(tmp_path)) == stored

    @pytest.mark.asyncio
    async def test_save_creates_target_directory(self, tmp_path):
        target = tmp_path / "new" / "pack"

        await LocalBackend().save_exclusion_list(str(target), ["a"])

        assert (target / EXCLUSION_FILE_NAME).exists()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["{broken", '{"a": 1}', "[1, 2]"])
    async def test_invalid_file_raises(self, tmp_path, content):
        (tmp_path / EXCLUSION_FILE_NAME).write_text(content)

        with pytest.raises(ExclusionStoreError):
            await LocalBackend().load_exclusion_list(str(tmp_path))


class TestFetchManifest:
    """Tests for manifest retrieval over HTTP."""

    @pytest.mark.asyncio
    async def test_returns_body(self):
        backend = _backend(_serve({"pack.json": b'{"packageName": "P"}'}))

        text = await backend.fetch_manifest_text("https://files.example.com/pack.json")

        assert text == '{"packageName": "P"}'

    @pytest.mark.asyncio
    async def test_http_error_carries_status(self):
        backend = _backend(_serve({}))

        with pytest.raises(ManifestFetchError) as exc_info:
            await backend.fetch_manifest_text("https://files.example.com/missing.json")

        assert exc_info.value.status_code == 404
        assert "HTTP 404" in str(exc_info.value)


class TestStartDownload:
    """Tests for the download pass."""

    @pytest.mark.asyncio
    async def test_downloads_and_emits_events(self, tmp_path):
        backend = _backend(_serve(CONTENT))
        events = _collect(backend)
        manifest = _manifest(_entry("mods/a.jar"), _entry("config/b.cfg"))

        await backend.start_download(SyncRequest(manifest, str(tmp_path)))

        assert (tmp_path / "mods" / "a.jar").read_bytes() == CONTENT["mods/a.jar"]
        assert (tmp_path / "config" / "b.cfg").read_bytes() == CONTENT["config/b.cfg"]
        successes = [e.payload for e in events if e.name == EventName.DOWNLOAD_SUCCESS]
        assert sorted(successes) == ["a.jar", "b.cfg"]
        overall = [e.payload for e in events if e.name == EventName.OVERALL_PROGRESS]
        assert overall == [50.0, 100.0]
        progress = [e.payload for e in events if e.name == EventName.DOWNLOAD_PROGRESS]
        assert {p.file for p in progress} == {"a.jar", "b.cfg"}
        assert all(p.downloaded <= p.total for p in progress)

    @pytest.mark.asyncio
    async def test_only_needed_files_are_downloaded(self, tmp_path):
        calls = []
        backend = _backend(_serve(CONTENT, calls))
        _write(tmp_path / "mods" / "a.jar", CONTENT["mods/a.jar"])
        manifest = _manifest(_entry("mods/a.jar"), _entry("config/b.cfg"))

        await backend.start_download(SyncRequest(manifest, str(tmp_path)))

        assert calls == ["config/b.cfg"]

    @pytest.mark.asyncio
    async def test_excluded_files_are_not_downloaded(self, tmp_path):
        calls = []
        backend = _backend(_serve(CONTENT, calls))
        manifest = _manifest(_entry("mods/a.jar"), _entry("config/b.cfg"))

        await backend.start_download(
            SyncRequest(manifest, str(tmp_path), excluded_files=("config/b.cfg",))
        )

        assert calls == ["mods/a.jar"]
        assert not (tmp_path / "config" / "b.cfg").exists()

    @pytest.mark.asyncio
    async def test_nothing_to_download_reports_complete(self, tmp_path):
        backend = _backend(_serve(CONTENT))
        events = _collect(backend)
        _write(tmp_path / "mods" / "a.jar", CONTENT["mods/a.jar"])
        _write(tmp_path / "mods" / "old.jar", b"stale")

        await backend.start_download(
            SyncRequest(_manifest(_entry("mods/a.jar")), str(tmp_path))
        )

        assert [(e.name, e.payload) for e in events] == [
            (EventName.OVERALL_PROGRESS, 100.0)
        ]
        assert not (tmp_path / "mods" / "old.jar").exists()

    @pytest.mark.asyncio
    async def test_cleanup_keeps_excluded_and_unrelated_files(self, tmp_path):
        backend = _backend(_serve(CONTENT))
        _write(tmp_path / "mods" / "old.jar", b"stale")
        _write(tmp_path / "mods" / "sub" / "older.jar", b"stale")
        _write(tmp_path / "mods" / "mine.jar", b"custom")
        _write(tmp_path / "saves" / "world.dat", b"progress")

        await backend.start_download(
            SyncRequest(
                _manifest(_entry("mods/a.jar")),
                str(tmp_path),
                excluded_files=("mods/mine.jar",),
            )
        )

        assert (tmp_path / "mods" / "a.jar").exists()
        assert (tmp_path / "mods" / "mine.jar").exists()
        assert (tmp_path / "saves" / "world.dat").exists()
        assert not (tmp_path / "mods" / "old.jar").exists()
        assert not (tmp_path / "mods" / "sub").exists()

    @pytest.mark.asyncio
    async def test_hash_mismatch_is_a_file_error(self, tmp_path):
        backend = _backend(_serve({**CONTENT, "mods/a.jar": b"corrupted"}))
        events = _collect(backend)
        _write(tmp_path / "mods" / "old.jar", b"stale")
        manifest = _manifest(_entry("mods/a.jar"), _entry("config/b.cfg"))

        await backend.start_download(SyncRequest(manifest, str(tmp_path)))

        errors = [e.payload for e in events if e.name == EventName.DOWNLOAD_ERROR]
        assert len(errors) == 1
        assert errors[0].startswith("Hash mismatch for a.jar")
        successes = [e.payload for e in events if e.name == EventName.DOWNLOAD_SUCCESS]
        assert successes == ["b.cfg"]
        # Cleanup is skipped after a failure
        assert (tmp_path / "mods" / "old.jar").exists()

    @pytest.mark.asyncio
    async def test_hash_check_disabled_skips_verification(self, tmp_path):
        backend = _backend(_serve({**CONTENT, "mods/a.jar": b"corrupted"}))
        events = _collect(backend)

        await backend.start_download(
            SyncRequest(
                _manifest(_entry("mods/a.jar")),
                str(tmp_path),
                hash_check_override=True,
            )
        )

        assert [e.name for e in events if e.name == EventName.DOWNLOAD_ERROR] == []

    @pytest.mark.asyncio
    async def test_transient_server_error_is_retried(self, tmp_path):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            if len(calls) == 1:
                return httpx.Response(500)
            return httpx.Response(200, content=CONTENT["mods/a.jar"])

        backend = _backend(handler)
        events = _collect(backend)

        await backend.start_download(
            SyncRequest(_manifest(_entry("mods/a.jar")), str(tmp_path))
        )

        assert len(calls) == 2
        assert [e.payload for e in events if e.name == EventName.DOWNLOAD_SUCCESS] == [
            "a.jar"
        ]

    @pytest.mark.asyncio
    async def test_gives_up_after_three_attempts(self, tmp_path):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return httpx.Response(503)

        backend = _backend(handler)
        events = _collect(backend)

        await backend.start_download(
            SyncRequest(_manifest(_entry("mods/a.jar")), str(tmp_path))
        )

        assert len(calls) == 3
        errors = [e.payload for e in events if e.name == EventName.DOWNLOAD_ERROR]
        assert errors[0].startswith("Failed to download a.jar")

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, tmp_path):
        calls = []
        backend = _backend(_serve({}, calls))

        await backend.start_download(
            SyncRequest(_manifest(_entry("mods/a.jar")), str(tmp_path))
        )

        assert calls == ["mods/a.jar"]

    @pytest.mark.asyncio
    async def test_archive_is_extracted_and_removed(self, tmp_path):
        archive = _zip_bytes({"new.txt": b"fresh", "sub/deep.txt": b"deep"})
        backend = _backend(_serve({"pack.zip": archive}))
        _write(tmp_path / "pack" / "old.txt", b"outdated")
        _write(tmp_path / "pack" / "keep.txt", b"mine")
        manifest = _manifest(
            _entry("pack.zip", data=archive, fileType="zip", autoExtract=True)
        )

        await backend.start_download(
            SyncRequest(manifest, str(tmp_path), excluded_files=("pack/keep.txt",))
        )

        assert (tmp_path / "pack" / "new.txt").read_bytes() == b"fresh"
        assert (tmp_path / "pack" / "sub" / "deep.txt").read_bytes() == b"deep"
        assert (tmp_path / "pack" / "keep.txt").read_bytes() == b"mine"
        assert not (tmp_path / "pack" / "old.txt").exists()
        assert not (tmp_path / "pack.zip").exists()

    @pytest.mark.asyncio
    async def test_archive_without_auto_extract_is_kept(self, tmp_path):
        archive = _zip_bytes({"new.txt": b"fresh"})
        backend = _backend(_serve({"pack.zip": archive}))
        manifest = _manifest(_entry("pack.zip", data=archive, fileType="zip"))

        await backend.start_download(SyncRequest(manifest, str(tmp_path)))

        assert (tmp_path / "pack.zip").read_bytes() == archive
        assert not (tmp_path / "pack").exists()


class TestInstallFromPackage:
    """Tests for installing from a local package archive."""

    def _package(self, tmp_path, files):
        manifest = {
            "packageName": "Pack",
            "version": "2.0",
            "files": [_entry(path, data) for path, data in files.items()],
        }
        members = {"manifest.json": json.dumps(manifest), **files}
        path = tmp_path / "package.zip"
        path.write_bytes(_zip_bytes(members))
        return path

    @pytest.mark.asyncio
    async def test_read_manifest(self, tmp_path):
        package = self._package(tmp_path, {"mods/a.jar": b"a"})

        text = await LocalBackend().read_manifest_from_package(package)

        assert json.loads(text)["version"] == "2.0"

    @pytest.mark.asyncio
    async def test_package_without_manifest(self, tmp_path):
        package = tmp_path / "package.zip"
        package.write_bytes(_zip_bytes({"mods/a.jar": b"a"}))

        with pytest.raises(PackageError, match="manifest.json"):
            await LocalBackend().read_manifest_from_package(package)

    @pytest.mark.asyncio
    async def test_not_a_zip(self, tmp_path):
        package = tmp_path / "package.zip"
        package.write_bytes(b"plain text")

        with pytest.raises(PackageError):
            await LocalBackend().read_manifest_from_package(package)

    @pytest.mark.asyncio
    async def test_installs_missing_files_only(self, tmp_path):
        package = self._package(
            tmp_path,
            {"mods/a.jar": b"a", "mods/b.jar": b"b", "config/c.cfg": b"c"},
        )
        target = tmp_path / "target"
        _write(target / "mods" / "a.jar", b"local version")
        _write(target / "mods" / "stale.jar", b"old")
        backend = LocalBackend()
        events = _collect(backend)

        manifest = await backend.install_from_package(
            package, str(target), excluded=["config/c.cfg"]
        )

        assert manifest.version == "2.0"
        assert (target / "mods" / "a.jar").read_bytes() == b"local version"
        assert (target / "mods" / "b.jar").read_bytes() == b"b"
        assert not (target / "config" / "c.cfg").exists()
        assert not (target / "mods" / "stale.jar").exists()
        assert [e.payload for e in events if e.name == EventName.DOWNLOAD_SUCCESS] == [
            "b.jar"
        ]
        assert events[-1].name == EventName.OVERALL_PROGRESS
        assert events[-1].payload == 100.0

    @pytest.mark.asyncio
    async def test_nothing_to_install(self, tmp_path):
        package = self._package(tmp_path, {"mods/a.jar": b"a"})
        target = tmp_path / "target"
        _write(target / "mods" / "a.jar", b"a")
        backend = LocalBackend()
        events = _collect(backend)

        await backend.install_from_package(package, str(target))

        assert [(e.name, e.payload) for e in events] == [
            (EventName.OVERALL_PROGRESS, 100.0)
        ]
