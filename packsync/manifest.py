"""Package manifest model and parsing.

A manifest describes the file set of a package: its name, version and an
ordered list of files with their hash, size, type and download URL. The wire
format has evolved over time, so several fields are accepted under more than
one key. Each field lists its accepted keys in priority order and the parser
resolves them once, producing a canonical :class:`Manifest`.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Union

from .exceptions import (
    InvalidFieldError,
    MalformedPayloadError,
    MissingFieldError,
)
from .utils import is_safe_relative_path, normalize_relative_path, top_level_component


class FileType(str, Enum):
    """Kinds of manifest entries."""

    FILE = "file"
    """Plain file, compared by hash and size"""

    ZIP = "zip"
    """Archive, always re-applied"""

    UPDATE_PACKAGE = "update_package"
    """Bundled update, always re-applied"""


# Accepted wire keys per canonical field, in priority order
MANIFEST_FIELD_KEYS: dict[str, tuple[str, ...]] = {
    "packageName": ("packageName", "package_name"),
    "version": ("version",),
    "description": ("description",),
    "disableHashCheck": ("disableHashCheck", "disable_hash_check"),
    "disableSizeCheck": ("disableSizeCheck", "disable_size_check"),
    "files": ("files",),
}

FILE_FIELD_KEYS: dict[str, tuple[str, ...]] = {
    "name": ("name",),
    "relativePath": ("relativePath", "relative_path"),
    "hash": ("hash",),
    "size": ("size",),
    "fileType": ("fileType", "type", "file_type"),
    "autoExtract": ("autoExtract", "auto_extract"),
    "downloadUrl": ("downloadUrl", "url", "download_url"),
}


@dataclass(frozen=True)
class ManifestFile:
    """A single file entry of a manifest."""

    name: str
    relative_path: str
    hash: str
    size: int
    download_url: str
    file_type: FileType = FileType.FILE
    auto_extract: Optional[bool] = None

    @property
    def is_archive(self) -> bool:
        """True for zip and update-package entries."""
        return self.file_type in (FileType.ZIP, FileType.UPDATE_PACKAGE)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "relativePath": self.relative_path,
            "hash": self.hash,
            "size": self.size,
            "fileType": self.file_type.value,
            "downloadUrl": self.download_url,
        }
        if self.auto_extract is not None:
            data["autoExtract"] = self.auto_extract
        return data


@dataclass(frozen=True)
class Manifest:
    """Canonical representation of a remote package description."""

    package_name: str
    version: str
    files: tuple[ManifestFile, ...] = field(default_factory=tuple)
    description: Optional[str] = None
    disable_hash_check: Optional[bool] = None
    disable_size_check: Optional[bool] = None

    @property
    def total_size(self) -> int:
        """Total size in bytes of all manifest files."""
        return sum(f.size for f in self.files)

    def top_level_dirs(self) -> set[str]:
        """Return the first path segment of every file that lives in a directory."""
        return {
            top_level_component(f.relative_path)
            for f in self.files
            if "/" in f.relative_path
        }

    def get_file(self, relative_path: str) -> Optional[ManifestFile]:
        """Find a file entry by its relative path."""
        for f in self.files:
            if f.relative_path == relative_path:
                return f
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the canonical key of every field."""
        data: dict[str, Any] = {
            "packageName": self.package_name,
            "version": self.version,
        }
        if self.description is not None:
            data["description"] = self.description
        if self.disable_hash_check is not None:
            data["disableHashCheck"] = self.disable_hash_check
        if self.disable_size_check is not None:
            data["disableSizeCheck"] = self.disable_size_check
        data["files"] = [f.to_dict() for f in self.files]
        return data

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


def _resolve(data: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    """Return the value of the first key holding a usable value.

    A value is usable when it is present, not null and not an empty string.
    """
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, str) and value == "":
            continue
        return value
    return None


def _parse_optional_bool(
    data: Mapping[str, Any], field_name: str, keys: tuple[str, ...], file_name: Optional[str] = None
) -> Optional[bool]:
    value = _resolve(data, keys)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise InvalidFieldError(field_name, "expected a boolean", file_name)
    return value


def _parse_file(data: Any, index: int) -> ManifestFile:
    if not isinstance(data, Mapping):
        raise MalformedPayloadError(f"Manifest entry files[{index}] is not an object")

    raw_name = _resolve(data, FILE_FIELD_KEYS["name"])
    if raw_name is None:
        raise MissingFieldError("name", f"files[{index}]")
    name = str(raw_name)

    def required(field_name: str) -> Any:
        value = _resolve(data, FILE_FIELD_KEYS[field_name])
        if value is None:
            raise MissingFieldError(field_name, name)
        return value

    relative_path = normalize_relative_path(str(required("relativePath")))
    if not is_safe_relative_path(relative_path):
        raise InvalidFieldError(
            "relativePath", f"'{relative_path}' must stay inside the target directory", name
        )

    download_url = str(required("downloadUrl"))
    file_hash = str(required("hash"))

    size = required("size")
    if isinstance(size, bool) or not isinstance(size, int):
        raise InvalidFieldError("size", "expected an integer", name)
    if size < 0:
        raise InvalidFieldError("size", "must not be negative", name)

    raw_type = _resolve(data, FILE_FIELD_KEYS["fileType"])
    try:
        file_type = FileType(raw_type) if raw_type is not None else FileType.FILE
    except ValueError:
        raise InvalidFieldError("fileType", f"unknown file type '{raw_type}'", name) from None

    auto_extract = _parse_optional_bool(
        data, "autoExtract", FILE_FIELD_KEYS["autoExtract"], name
    )

    return ManifestFile(
        name=name,
        relative_path=relative_path,
        hash=file_hash,
        size=size,
        download_url=download_url,
        file_type=file_type,
        auto_extract=auto_extract,
    )


def parse_manifest(raw_text: Union[str, bytes]) -> Manifest:
    """Parse and validate a manifest payload.

    Args:
        raw_text: JSON text of the manifest

    Returns:
        Normalized Manifest

    Raises:
        MalformedPayloadError: If the payload is not a JSON object with a
            list of file objects
        MissingFieldError: If a required field has no usable value under any
            of its accepted keys
        InvalidFieldError: If a field value has the wrong type or an
            unsupported value

    Examples:
        >>> manifest = parse_manifest('{"package_name": "Pack", "version": "1.0", "files": []}')
        >>> manifest.package_name
        'Pack'
    """
    try:
        data = json.loads(raw_text)
    except (ValueError, TypeError) as e:
        raise MalformedPayloadError(f"Manifest is not valid JSON: {e}") from e

    if not isinstance(data, Mapping):
        raise MalformedPayloadError("Manifest must be a JSON object")

    package_name = _resolve(data, MANIFEST_FIELD_KEYS["packageName"])
    if package_name is None:
        raise MissingFieldError("packageName")

    version = _resolve(data, MANIFEST_FIELD_KEYS["version"])
    if version is None:
        raise MissingFieldError("version")

    raw_files = _resolve(data, MANIFEST_FIELD_KEYS["files"])
    if raw_files is None:
        raise MissingFieldError("files")
    if not isinstance(raw_files, list):
        raise MalformedPayloadError("Manifest field 'files' must be a list")

    description = _resolve(data, MANIFEST_FIELD_KEYS["description"])

    return Manifest(
        package_name=str(package_name),
        version=str(version),
        files=tuple(_parse_file(item, i) for i, item in enumerate(raw_files)),
        description=str(description) if description is not None else None,
        disable_hash_check=_parse_optional_bool(
            data, "disableHashCheck", MANIFEST_FIELD_KEYS["disableHashCheck"]
        ),
        disable_size_check=_parse_optional_bool(
            data, "disableSizeCheck", MANIFEST_FIELD_KEYS["disableSizeCheck"]
        ),
    )


__all__ = [
    "FileType",
    "ManifestFile",
    "Manifest",
    "MANIFEST_FIELD_KEYS",
    "FILE_FIELD_KEYS",
    "parse_manifest",
]
