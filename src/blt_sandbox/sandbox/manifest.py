"""Patch a sandbox ``composer.json`` to resolve packages from local paths."""

from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from blt_sandbox.sandbox.errors import ManifestError
from blt_sandbox.utils.fs import atomic_write

if TYPE_CHECKING:
    from collections.abc import Sequence

REQUIRE_SECTION = "require"
REQUIRE_DEV_SECTION = "require-dev"
REPOSITORIES_SECTION = "repositories"


@dataclass(frozen=True, slots=True)
class PathRepository:
    """A ``path`` repository entry plus the requirement it satisfies."""

    name: str
    url: str
    package: str
    constraint: str
    section: str = REQUIRE_SECTION
    symlink: bool = True

    def __post_init__(self) -> None:
        if self.section not in (REQUIRE_SECTION, REQUIRE_DEV_SECTION):
            raise ValueError(f"unsupported requirement section {self.section!r}")
        for field_name in ("name", "url", "package", "constraint"):
            value = getattr(self, field_name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"PathRepository.{field_name} must be a non-empty string")

    def repository_entry(self) -> dict[str, Any]:
        return {
            "type": "path",
            "url": self.url,
            "options": {
                "symlink": self.symlink,
            },
        }


def apply_path_dependencies(
    document: Mapping[str, Any],
    repositories: Sequence[PathRepository],
) -> dict[str, Any]:
    """
    Return a copy of ``document`` wired to the given path repositories.

    Existing repositories and requirements are preserved. ``repositories`` may
    be keyed by name or be a list; list entries pointing at the same url are
    replaced rather than duplicated.
    """

    if not isinstance(document, Mapping):
        raise ManifestError("manifest root must be a JSON object")

    patched = copy.deepcopy(dict(document))
    for repository in repositories:
        _add_repository(patched, repository)
        section = _object_section(patched, repository.section)
        section[repository.package] = repository.constraint
    return patched


def read_manifest(path: Path) -> dict[str, Any]:
    """Read and decode a manifest; filesystem errors propagate unchanged."""

    raw = path.read_text(encoding="utf-8")
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"invalid JSON in {path}: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ManifestError(f"manifest root must be a JSON object: {path}")
    return parsed


def render_manifest(document: Mapping[str, Any]) -> str:
    """Pretty-print with four-space indentation and unescaped slashes."""

    return json.dumps(document, indent=4) + "\n"


def patch_manifest_file(path: Path, repositories: Sequence[PathRepository]) -> dict[str, Any]:
    """Rewrite the manifest at ``path`` in place and return the new document."""

    patched = apply_path_dependencies(read_manifest(path), repositories)
    atomic_write(path, render_manifest(patched))
    return patched


def _add_repository(document: dict[str, Any], repository: PathRepository) -> None:
    existing = document.get(REPOSITORIES_SECTION)
    entry = repository.repository_entry()

    if existing is None or (isinstance(existing, list) and not existing):
        document[REPOSITORIES_SECTION] = {repository.name: entry}
        return
    if isinstance(existing, dict):
        existing[repository.name] = entry
        return
    if isinstance(existing, list):
        kept = [
            item
            for item in existing
            if not (
                isinstance(item, Mapping)
                and item.get("type") == "path"
                and item.get("url") == repository.url
            )
        ]
        kept.append(entry)
        document[REPOSITORIES_SECTION] = kept
        return
    raise ManifestError(f"{REPOSITORIES_SECTION!r} must be an object or a list")


def _object_section(document: dict[str, Any], key: str) -> dict[str, Any]:
    section = document.get(key)
    # An empty PHP array is serialized as [] by some tooling.
    if section is None or section == []:
        section = {}
        document[key] = section
    if not isinstance(section, dict):
        raise ManifestError(f"{key!r} must be a JSON object")
    return section


__all__ = [
    "PathRepository",
    "apply_path_dependencies",
    "patch_manifest_file",
    "read_manifest",
    "render_manifest",
]
