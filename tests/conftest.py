"""
tests/conftest.py
Shared fixtures for the schemasync test suite.

No external mocking libraries are used; real file I/O is performed
inside temporary directories managed by pytest's tmp_path fixtures.
"""

from __future__ import annotations

import io
import json
import logging
import pathlib
import zipfile
from typing import Any, Callable, Dict, Iterator, List, Union

import pytest
import yaml

from schemasync.models import Candidate


# ---------------------------------------------------------------------------
# Logging isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_schemasync_logger() -> Iterator[None]:
    """The CLI installs its own handler; undo that after every test."""
    yield
    root = logging.getLogger("schemasync")
    root.handlers.clear()
    root.propagate = True
    root.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# File tree helpers
# ---------------------------------------------------------------------------

TreeSpec = Dict[str, Union[str, bytes]]


def write_tree(root: pathlib.Path, files: TreeSpec) -> pathlib.Path:
    """Create *files* (relative path → content) under *root*."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture()
def source_root(tmp_path: pathlib.Path) -> pathlib.Path:
    root = tmp_path / "source"
    root.mkdir()
    return root


@pytest.fixture()
def dest_root(tmp_path: pathlib.Path) -> pathlib.Path:
    root = tmp_path / "dest"
    root.mkdir()
    return root


# ---------------------------------------------------------------------------
# Bundles
# ---------------------------------------------------------------------------


def make_zip_bytes(files: TreeSpec) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture()
def sample_manifest() -> Dict[str, List[Dict[str, Any]]]:
    """Object-of-arrays manifest in the explicit {path, destination, replace} form."""
    return {
        "models": [
            {"path": "app/Models/User.php", "destination": "app/Models/User.php", "replace": True},
            {"path": "app/Models/Post.php", "destination": "app/Models/Post.php", "replace": False},
        ],
        "migrations": [
            {
                "path": "database/migrations/2024_01_01_create_users.php",
                "destination": "database/migrations/2024_01_01_create_users.php",
                "replace": False,
            },
        ],
    }


@pytest.fixture()
def bundle_factory(tmp_path: pathlib.Path) -> Callable[..., pathlib.Path]:
    """Return a factory writing ``bundle.zip`` from a file mapping."""

    def _factory(files: TreeSpec, name: str = "bundle.zip") -> pathlib.Path:
        path = tmp_path / name
        path.write_bytes(make_zip_bytes(files))
        return path

    return _factory


@pytest.fixture()
def sample_bundle(
    bundle_factory: Callable[..., pathlib.Path],
    sample_manifest: Dict[str, List[Dict[str, Any]]],
) -> pathlib.Path:
    return bundle_factory(
        {
            "build/filelist.json": json.dumps(sample_manifest),
            "build/app/Models/User.php": "<?php class User {}\n",
            "build/app/Models/Post.php": "<?php class Post {}\n",
            "build/database/migrations/2024_01_01_create_users.php": "<?php // users\n",
        }
    )


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


def write_yaml(path: pathlib.Path, data: Any) -> pathlib.Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(data, fh, default_flow_style=False, allow_unicode=True)
    return path


@pytest.fixture()
def schema_root(tmp_path: pathlib.Path) -> pathlib.Path:
    """Two groups, three objects; Post declares its objectName explicitly."""
    root = tmp_path / "database" / "schemas"
    write_yaml(root / "Auth" / "User.yaml", {"displayName": "User", "attributes": {"email": {"type": "Email"}}})
    write_yaml(root / "Auth" / "Role.yml", {"displayName": "Role", "attributes": {"name": {"type": "String"}}})
    write_yaml(
        root / "Blog" / "post.yaml",
        {"objectName": "Post", "displayName": "Post", "attributes": {"title": {"type": "String"}}},
    )
    (root / "Blog" / "README.md").write_text("not a schema", encoding="utf-8")
    return root


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------


@pytest.fixture()
def colors() -> List[Candidate]:
    return [
        Candidate(id=1, title="Red", type="Color"),
        Candidate(id=2, title="Blue", type="Color"),
    ]


@pytest.fixture()
def sizes() -> List[Candidate]:
    return [
        Candidate(id=10, title="S", type="Size"),
        Candidate(id=11, title="M", type="Size"),
        Candidate(id=12, title="L", type="Size"),
    ]


# ---------------------------------------------------------------------------
# Helper fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_tree() -> Callable[[pathlib.Path, TreeSpec], pathlib.Path]:
    return write_tree


@pytest.fixture()
def zip_bytes() -> Callable[[TreeSpec], bytes]:
    return make_zip_bytes


@pytest.fixture()
def yaml_writer() -> Callable[[pathlib.Path, Any], pathlib.Path]:
    return write_yaml
