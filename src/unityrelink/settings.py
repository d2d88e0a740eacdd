"""Persisted resolver settings.

Settings live next to Unity's own project settings so they travel with the
project. Environment variables override the stored values, which is how CI
jobs run the tool non-interactively.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path

SETTINGS_RELATIVE_PATH = Path("ProjectSettings") / "UnityRelinkSettings.json"

DEFAULT_SEARCH_LIMIT = 10

ENV_SEARCH_LIMIT = "UNITYRELINK_SEARCH_LIMIT"
ENV_SKIP_CONFIRMATION = "UNITYRELINK_SKIP_CONFIRMATION"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """User settings for the resolver.

    Attributes:
        search_limit: Maximum broken references collected per scan (0: no limit)
        skip_confirmation: Apply fixes without asking first
    """

    search_limit: int = DEFAULT_SEARCH_LIMIT
    skip_confirmation: bool = False

    @classmethod
    def load(cls, project_root: Path | None = None, use_environment: bool = True) -> Settings:
        """Load settings for a project, falling back to defaults.

        A missing or unreadable settings file is not an error.

        Args:
            project_root: Unity project root (None: defaults only)
            use_environment: Apply UNITYRELINK_* environment overrides
        """
        settings = cls()
        if project_root is not None:
            path = settings_path(project_root)
            try:
                with open(path, encoding="utf-8") as f:
                    raw = json.load(f)
            except (OSError, json.JSONDecodeError):
                raw = {}
            if isinstance(raw, dict):
                settings = cls._from_dict(raw)

        if use_environment:
            settings.apply_environment()
        return settings

    @classmethod
    def _from_dict(cls, raw: dict) -> Settings:
        known = {f.name for f in fields(cls)}
        settings = cls(**{k: v for k, v in raw.items() if k in known})
        try:
            settings.search_limit = max(0, int(settings.search_limit))
        except (TypeError, ValueError):
            settings.search_limit = DEFAULT_SEARCH_LIMIT
        settings.skip_confirmation = bool(settings.skip_confirmation)
        return settings

    def apply_environment(self) -> None:
        limit = os.environ.get(ENV_SEARCH_LIMIT)
        if limit:
            try:
                self.search_limit = max(0, int(limit))
            except ValueError:
                raise ValueError(f"{ENV_SEARCH_LIMIT} must be an integer, got '{limit}'") from None
        skip = os.environ.get(ENV_SKIP_CONFIRMATION)
        if skip:
            self.skip_confirmation = skip.strip().lower() in _TRUE_VALUES

    def save(self, project_root: Path) -> Path:
        """Write settings into the project's ProjectSettings folder.

        Returns:
            Path of the written file
        """
        path = settings_path(project_root)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(asdict(self), f, indent=2)
            f.write("\n")
        return path


def settings_path(project_root: Path) -> Path:
    return Path(project_root) / SETTINGS_RELATIVE_PATH
