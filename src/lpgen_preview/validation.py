"""Project ID validation."""

from __future__ import annotations

import re

# Project IDs become directory names under the projects root, so only
# alphanumerics, underscores and hyphens are accepted (no "..", no slashes).
SAFE_ID_PATTERN = re.compile(r"[a-zA-Z0-9_-]+")
MAX_ID_LENGTH = 128


class ValidationError(ValueError):
    """Raised when a project ID is rejected."""


def validate_project_id(project_id: str) -> str:
    """Return the project ID unchanged if it is safe to use as a directory name.

    Raises:
        ValidationError: If the ID is empty, too long or contains unsafe characters
    """
    if not project_id:
        raise ValidationError("Invalid project_id: cannot be empty")

    if len(project_id) > MAX_ID_LENGTH:
        raise ValidationError(f"Invalid project_id: longer than {MAX_ID_LENGTH} characters")

    if not SAFE_ID_PATTERN.fullmatch(project_id):
        raise ValidationError("Invalid project_id: contains unsafe characters")

    return project_id
