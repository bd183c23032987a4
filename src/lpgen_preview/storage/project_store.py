"""Filesystem-backed lookup of generated projects."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from lpgen_preview.errors import ProjectNotFoundError
from lpgen_preview.validation import ValidationError, validate_project_id

logger = structlog.get_logger()

PACKAGE_JSON = "package.json"
DEFAULT_SCRIPTS = {
    "dev": "next dev",
    "build": "next build",
}
REQUIRED_DEPENDENCIES = {
    "next": "^15.0.0",
    "react": "^18.0.0",
    "react-dom": "^18.0.0",
}


@dataclass(frozen=True)
class ProjectInfo:
    """A project directory found under the projects root."""

    id: str
    name: str
    path: Path
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at.isoformat(),
        }


class ProjectStore:
    """Resolves project IDs to their source directories.

    Each project lives in ``<projects_dir>/<project_id>``. The store is read
    only from the preview manager's point of view, apart from
    :meth:`ensure_package_json`.
    """

    def __init__(self, projects_dir: str | Path) -> None:
        self._root = Path(projects_dir)

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, project_id: str) -> Path:
        """Return the project's directory.

        Raises:
            ProjectNotFoundError: If the ID is unsafe or the directory is missing
        """
        try:
            validate_project_id(project_id)
        except ValidationError as e:
            raise ProjectNotFoundError(str(e)) from e

        path = self._root / project_id
        if not path.is_dir():
            raise ProjectNotFoundError(f"Project not found: {project_id}")
        return path

    def exists(self, project_id: str) -> bool:
        try:
            self.resolve(project_id)
        except ProjectNotFoundError:
            return False
        return True

    def list_projects(self) -> list[ProjectInfo]:
        """List project directories, newest first."""
        if not self._root.is_dir():
            return []

        projects = []
        for entry in self._root.iterdir():
            if not entry.is_dir() or entry.name.startswith("."):
                continue
            stat = entry.stat()
            projects.append(
                ProjectInfo(
                    id=entry.name,
                    name=self._read_name(entry) or entry.name,
                    path=entry,
                    created_at=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
                )
            )
        projects.sort(key=lambda p: p.created_at, reverse=True)
        return projects

    def _read_name(self, path: Path) -> str | None:
        package_json = path / PACKAGE_JSON
        if not package_json.is_file():
            return None
        try:
            data = json.loads(package_json.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return None
        name = data.get("name") if isinstance(data, dict) else None
        return name if isinstance(name, str) else None

    def ensure_package_json(self, path: Path) -> bool:
        """Fill in missing dev/build scripts and framework dependencies.

        Projects without a ``package.json`` are left alone; they may run a
        dev server that is not node based.

        Returns:
            True if the file was rewritten
        """
        package_json = path / PACKAGE_JSON
        if not package_json.is_file():
            return False

        try:
            data = json.loads(package_json.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid {PACKAGE_JSON} in {path.name}: {e}") from e

        changed = False
        scripts = data.setdefault("scripts", {})
        for script, command in DEFAULT_SCRIPTS.items():
            if not scripts.get(script):
                scripts[script] = command
                changed = True

        dependencies = data.setdefault("dependencies", {})
        for dependency, version in REQUIRED_DEPENDENCIES.items():
            if dependency not in dependencies:
                dependencies[dependency] = version
                changed = True

        if changed:
            package_json.write_text(json.dumps(data, indent=2), encoding="utf-8")
            logger.info("Patched package.json", project=path.name)
        return changed
