"""Unit tests for path-repository manifest patching."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from blt_sandbox.sandbox.errors import ManifestError
from blt_sandbox.sandbox.manifest import (
    PathRepository,
    apply_path_dependencies,
    patch_manifest_file,
    read_manifest,
    render_manifest,
)

TOOL = PathRepository(
    name="blt",
    url="/src/blt",
    package="acquia/blt",
    constraint="*@dev",
)
REQUIRE_DEV = PathRepository(
    name="blt-require-dev",
    url="/tmp/blt-require-dev",
    package="acquia/blt-require-dev",
    constraint="*@dev",
    section="require-dev",
)


def test_apply_adds_keyed_repositories_and_requirements() -> None:
    document = {"name": "acquia/blt-project", "require": {"php": ">=8.1"}}

    patched = apply_path_dependencies(document, [TOOL, REQUIRE_DEV])

    assert patched["repositories"] == {
        "blt": {"type": "path", "url": "/src/blt", "options": {"symlink": True}},
        "blt-require-dev": {
            "type": "path",
            "url": "/tmp/blt-require-dev",
            "options": {"symlink": True},
        },
    }
    assert patched["require"] == {"php": ">=8.1", "acquia/blt": "*@dev"}
    assert patched["require-dev"] == {"acquia/blt-require-dev": "*@dev"}


def test_apply_does_not_mutate_input() -> None:
    document = {"require": {"php": ">=8.1"}, "repositories": {"other": {"type": "vcs"}}}
    snapshot = json.loads(json.dumps(document))

    apply_path_dependencies(document, [TOOL])

    assert document == snapshot


def test_apply_preserves_unrelated_repositories_and_overwrites_same_name() -> None:
    document = {
        "repositories": {
            "drupal": {"type": "composer", "url": "https://packages.drupal.org/8"},
            "blt": {"type": "vcs", "url": "https://example.invalid/blt.git"},
        }
    }

    patched = apply_path_dependencies(document, [TOOL])

    assert patched["repositories"]["drupal"]["type"] == "composer"
    assert patched["repositories"]["blt"]["type"] == "path"


def test_apply_list_repositories_replaces_entry_with_same_url() -> None:
    document = {
        "repositories": [
            {"type": "composer", "url": "https://packages.drupal.org/8"},
            {"type": "path", "url": "/src/blt", "options": {"symlink": False}},
        ]
    }

    patched = apply_path_dependencies(document, [TOOL])

    repositories = patched["repositories"]
    assert len(repositories) == 2
    assert repositories[0]["type"] == "composer"
    assert repositories[1] == {"type": "path", "url": "/src/blt", "options": {"symlink": True}}


def test_apply_treats_empty_arrays_as_empty_objects() -> None:
    document = {"repositories": [], "require-dev": []}

    patched = apply_path_dependencies(document, [TOOL, REQUIRE_DEV])

    assert set(patched["repositories"]) == {"blt", "blt-require-dev"}
    assert patched["require-dev"] == {"acquia/blt-require-dev": "*@dev"}


def test_apply_rejects_non_object_requirement_section() -> None:
    with pytest.raises(ManifestError, match="require"):
        apply_path_dependencies({"require": ["acquia/blt"]}, [TOOL])


def test_apply_honours_symlink_flag() -> None:
    copied = PathRepository(
        name="blt",
        url="/src/blt",
        package="acquia/blt",
        constraint="*@dev",
        symlink=False,
    )

    patched = apply_path_dependencies({}, [copied])

    assert patched["repositories"]["blt"]["options"] == {"symlink": False}


@pytest.mark.parametrize(
    "kwargs",
    [
        {"section": "suggest"},
        {"name": ""},
        {"url": "   "},
    ],
)
def test_path_repository_validates_fields(kwargs: dict[str, str]) -> None:
    values = {"name": "blt", "url": "/src/blt", "package": "acquia/blt", "constraint": "*@dev"}
    values.update(kwargs)

    with pytest.raises(ValueError):
        PathRepository(**values)


def test_read_manifest_rejects_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "composer.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ManifestError, match="invalid JSON"):
        read_manifest(path)


def test_read_manifest_rejects_non_object_root(tmp_path: Path) -> None:
    path = tmp_path / "composer.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ManifestError, match="JSON object"):
        read_manifest(path)


def test_read_manifest_missing_file_propagates_os_error(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        read_manifest(tmp_path / "missing.json")


def test_render_manifest_uses_four_space_indent_and_plain_slashes() -> None:
    rendered = render_manifest({"repositories": {"blt": {"url": "/src/blt"}}})

    assert rendered.endswith("}\n")
    assert '\n    "repositories": {\n        "blt": {' in rendered
    assert '"url": "/src/blt"' in rendered


def test_patch_manifest_file_rewrites_in_place(tmp_path: Path) -> None:
    path = tmp_path / "composer.json"
    path.write_text(json.dumps({"name": "acquia/blt-project"}), encoding="utf-8")

    returned = patch_manifest_file(path, [TOOL, REQUIRE_DEV])

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk == returned
    assert on_disk["require"] == {"acquia/blt": "*@dev"}
    assert sorted(p.name for p in tmp_path.iterdir()) == ["composer.json"]
