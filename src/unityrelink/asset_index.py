"""Unity asset GUID index.

Maps the GUIDs stored in ``.meta`` files to asset paths, which is how a
script link ``{fileID, guid, type}`` found in a scene or prefab is resolved
to the script asset that defines its class.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

# Pattern to extract GUID from .meta files
META_GUID_PATTERN = re.compile(r"^guid:\s*([a-f0-9]{32})\s*$", re.MULTILINE)

# Asset kinds that can hold MonoScripts
SCRIPT_EXTENSIONS = {".cs", ".dll"}


@dataclass
class GUIDIndex:
    """Index mapping GUIDs to asset paths (relative to the project root)."""

    guid_to_path: dict[str, Path] = field(default_factory=dict)
    project_root: Path | None = None

    def __len__(self) -> int:
        return len(self.guid_to_path)

    def get_path(self, guid: str) -> Path | None:
        """Get the asset path for a GUID."""
        return self.guid_to_path.get(guid)

    def absolute(self, path: Path) -> Path:
        """Turn an indexed path into a filesystem path."""
        if self.project_root is not None and not path.is_absolute():
            return self.project_root / path
        return path

    def iter_assets(self, extensions: set[str]) -> list[tuple[str, Path]]:
        """List (guid, path) pairs whose extension is in ``extensions``, sorted by path."""
        found = [
            (guid, path)
            for guid, path in self.guid_to_path.items()
            if path.suffix.lower() in extensions
        ]
        found.sort(key=lambda item: str(item[1]))
        return found

    def add(self, guid: str, asset_path: Path) -> None:
        """Register an asset, storing it relative to the project root when possible."""
        if self.project_root is not None:
            try:
                asset_path = asset_path.relative_to(self.project_root)
            except ValueError:
                # Path is not relative to project root
                pass
        self.guid_to_path[guid] = asset_path


def find_unity_project_root(start_path: Path) -> Path | None:
    """Find the Unity project root by looking for Assets folder.

    Args:
        start_path: Starting path to search from

    Returns:
        Path to project root (parent of Assets folder), or None if not found
    """
    current = start_path.resolve()

    # If start_path is a file, start from its parent
    if current.is_file():
        current = current.parent

    # Search upward for Assets folder
    for _ in range(20):  # Limit search depth
        if (current / "Assets").is_dir():
            return current

        parent = current.parent
        if parent == current:  # Reached root
            break
        current = parent

    return None


def read_meta_guid(asset_path: Path) -> str | None:
    """Read the GUID from the .meta file next to an asset."""
    meta_path = Path(str(asset_path) + ".meta")
    try:
        content = meta_path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    match = META_GUID_PATTERN.search(content)
    return match.group(1) if match else None


def build_guid_index(
    project_root: Path,
    include_packages: bool = True,
    progress_callback: Callable[[int, int], None] | None = None,
) -> GUIDIndex:
    """Build an index of all GUIDs in a Unity project.

    Args:
        project_root: Path to Unity project root
        include_packages: Whether to include Packages and Library/PackageCache
        progress_callback: Optional callback for progress (current, total)

    Returns:
        GUIDIndex mapping GUIDs to asset paths
    """
    index = GUIDIndex(project_root=project_root)

    # Collect all .meta files
    search_paths = [project_root / "Assets"]
    if include_packages:
        search_paths.append(project_root / "Packages")
        search_paths.append(project_root / "Library" / "PackageCache")

    meta_files: list[Path] = []
    for search_path in search_paths:
        if search_path.is_dir():
            meta_files.extend(sorted(search_path.rglob("*.meta")))

    total = len(meta_files)

    for i, meta_path in enumerate(meta_files):
        if progress_callback:
            progress_callback(i + 1, total)

        try:
            content = meta_path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            # Skip unreadable files
            continue

        match = META_GUID_PATTERN.search(content)
        if match:
            # Asset path is meta path without .meta extension
            index.add(match.group(1), meta_path.with_suffix(""))

    return index
