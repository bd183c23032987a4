"""Tests for the filesystem project store."""

from __future__ import annotations

import json
import os

import pytest

from lpgen_preview.errors import ProjectNotFoundError
from lpgen_preview.storage import ProjectStore
from lpgen_preview.storage.project_store import DEFAULT_SCRIPTS, REQUIRED_DEPENDENCIES


@pytest.fixture
def store(projects_dir) -> ProjectStore:
    return ProjectStore(projects_dir)


# ============================================
# Lookup
# ============================================


def test_resolve_existing_project(store, make_project):
    """Test resolve existing project."""
    path = make_project("landing")
    assert store.resolve("landing") == path
    assert store.exists("landing")


def test_resolve_missing_project(store):
    """Test resolve missing project."""
    with pytest.raises(ProjectNotFoundError, match="Project not found: ghost"):
        store.resolve("ghost")
    assert not store.exists("ghost")


def test_resolve_rejects_traversal(store, projects_dir):
    """Test resolve rejects traversal."""
    (projects_dir.parent / "outside").mkdir()

    with pytest.raises(ProjectNotFoundError, match="unsafe characters"):
        store.resolve("../outside")


def test_resolve_rejects_plain_file(store, projects_dir):
    """Test resolve rejects plain file."""
    (projects_dir / "notes").write_text("not a project")

    with pytest.raises(ProjectNotFoundError):
        store.resolve("notes")


def test_list_projects_newest_first(store, make_project):
    """Test list projects newest first."""
    old = make_project("old", package={"name": "Old Landing"})
    make_project("new")
    os.utime(old, (1_000_000, 1_000_000))

    projects = store.list_projects()

    assert [p.id for p in projects] == ["new", "old"]
    assert projects[1].name == "Old Landing"
    assert projects[0].name == "new"


def test_list_projects_skips_hidden_and_files(store, make_project, projects_dir):
    """Test list projects skips hidden and files."""
    make_project("visible")
    (projects_dir / ".cache").mkdir()
    (projects_dir / "README.md").write_text("hi")

    assert [p.id for p in store.list_projects()] == ["visible"]


def test_list_projects_tolerates_bad_package_json(store, make_project):
    """Test list projects tolerates bad package json."""
    path = make_project("broken")
    (path / "package.json").write_text("{not json")

    (project,) = store.list_projects()
    assert project.name == "broken"


def test_list_projects_missing_root(tmp_path):
    """Test list projects missing root."""
    assert ProjectStore(tmp_path / "nope").list_projects() == []


def test_project_info_to_dict(store, make_project):
    """Test project info to dict."""
    make_project("landing")

    data = store.list_projects()[0].to_dict()

    assert data["id"] == "landing"
    assert data["name"] == "landing"
    assert "created_at" in data


# ============================================
# package.json preparation
# ============================================


def test_ensure_package_json_fills_missing_entries(store, make_project):
    """Test ensure package json fills missing entries."""
    path = make_project("landing", package={"name": "landing", "scripts": {"lint": "eslint ."}})

    assert store.ensure_package_json(path) is True

    data = json.loads((path / "package.json").read_text())
    assert data["name"] == "landing"
    assert data["scripts"]["lint"] == "eslint ."
    for script, command in DEFAULT_SCRIPTS.items():
        assert data["scripts"][script] == command
    for dependency in REQUIRED_DEPENDENCIES:
        assert dependency in data["dependencies"]


def test_ensure_package_json_keeps_existing_values(store, make_project):
    """Test ensure package json keeps existing values."""
    package = {
        "scripts": {"dev": "next dev --turbo", "build": "next build"},
        "dependencies": {"next": "14.2.0", "react": "^18.0.0", "react-dom": "^18.0.0"},
    }
    path = make_project("landing", package=package)

    assert store.ensure_package_json(path) is False
    assert json.loads((path / "package.json").read_text()) == package


def test_ensure_package_json_without_file(store, make_project):
    """Test ensure package json without file."""
    path = make_project("static-site")

    assert store.ensure_package_json(path) is False
    assert not (path / "package.json").exists()


def test_ensure_package_json_invalid_json(store, make_project):
    """Test ensure package json invalid json."""
    path = make_project("landing")
    (path / "package.json").write_text("{oops")

    with pytest.raises(ValueError, match="Invalid package.json"):
        store.ensure_package_json(path)
