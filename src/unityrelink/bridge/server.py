import json
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from unityrelink.asset_index import find_unity_project_root
from unityrelink.bridge.config import UNITYRELINK_PROJECT
from unityrelink.bridge.unity_client import UnityBridgeError, UnityClient
from unityrelink.errors import RelinkError
from unityrelink.host import UnityProject
from unityrelink.ranker import MAX_DISPLAYED_CANDIDATES
from unityrelink.resolver import MissingScriptResolver
from unityrelink.settings import Settings

mcp = FastMCP(
    "unityrelink-bridge",
    instructions="Find and relink Missing Script components in Unity scenes and prefabs",
)

_client = UnityClient()
_projects = {}


def _error_text(e):
    return f"Error: {e}"


def _project(file_path=None, project_path=None):
    if project_path:
        root = Path(project_path)
    elif file_path:
        root = find_unity_project_root(Path(file_path))
    elif UNITYRELINK_PROJECT:
        root = Path(UNITYRELINK_PROJECT)
    else:
        root = None
    if root is None:
        raise RelinkError("Could not find a Unity project; pass project_path")

    key = root.resolve()
    if key not in _projects:
        _projects[key] = UnityProject(root, editor=_client)
    return _projects[key]


def _resolver(project, limit=None):
    settings = Settings.load(project.project_root)
    if limit is not None:
        settings.search_limit = limit
    return MissingScriptResolver(project, settings)


@mcp.tool()
def find_missing_scripts(
    file_path: str,
    object_ids: list[int] | None = None,
    include_children: bool = True,
    project_path: str | None = None,
    limit: int | None = None,
) -> str:
    """Find components with a missing script in a scene or prefab and rank replacement classes.

    Args:
        file_path: Path of the .unity or .prefab file
        object_ids: GameObject fileIDs to restrict the search to. Defaults to the whole file.
        include_children: Also search the children of object_ids
        project_path: Unity project root. Defaults to the project containing file_path.
        limit: Maximum number of broken components to report (0 for no limit)

    Returns:
        JSON with each broken component, its serialized field names and the best candidate classes
    """
    try:
        resolver = _resolver(_project(file_path, project_path), limit)
        result = resolver.scan_file(Path(file_path), object_ids, include_children)
        references = [ref.to_dict(MAX_DISPLAYED_CANDIDATES) for ref in result]
        output = {"missing": references, "truncated": result.truncated}
        return json.dumps(output, indent=2, ensure_ascii=False)
    except (RelinkError, ValueError) as e:
        return _error_text(e)


@mcp.tool()
def relink_missing_script(
    file_path: str,
    component_id: int,
    script: str,
    project_path: str | None = None,
    refresh_editor: bool = True,
) -> str:
    """Point a Missing Script component at another script, keeping its serialized data.

    Args:
        file_path: Path of the .unity or .prefab file
        component_id: fileID of the broken MonoBehaviour
        script: Class name, full class name or script file name of the replacement
        project_path: Unity project root. Defaults to the project containing file_path.
        refresh_editor: Ask a running Unity Editor to reimport the file afterwards

    Returns:
        JSON with the rewritten line, or an error
    """
    try:
        project = _project(file_path, project_path)
        project.editor = _client if refresh_editor else None
        resolver = _resolver(project)
        reference = resolver.find_reference(Path(file_path), component_id)
        chosen = resolver.script_by_name(script, reference)
        try:
            result = resolver.apply(reference, chosen)
            refreshed = refresh_editor
        except UnityBridgeError as e:
            # The file was already written; only the editor refresh failed
            output = {"success": True, "refreshed": False, "file": file_path, "warning": str(e)}
            return json.dumps(output, indent=2, ensure_ascii=False)
        output = {
            "success": True,
            "refreshed": refreshed,
            "file": str(result.path),
            "line": result.line_number,
            "old": result.old_line.strip(),
            "new": result.new_line.strip(),
            "script": chosen.display_name,
        }
        return json.dumps(output, indent=2, ensure_ascii=False)
    except (RelinkError, ValueError) as e:
        return _error_text(e)


@mcp.tool()
def rebuild_script_catalog(project_path: str | None = None) -> str:
    """Rescan the project's scripts and assemblies after code changes.

    Args:
        project_path: Unity project root. Defaults to UNITYRELINK_PROJECT.

    Returns:
        JSON with the number of cataloged classes and Odin-based classes
    """
    try:
        project = _project(project_path=project_path)
        project.refresh()
        catalog = _resolver(project).rebuild_catalog()
        output = {
            "classes": len(catalog),
            "odinClasses": len(catalog.addon_entries()),
            "odinInstalled": catalog.addon_base is not None,
        }
        return json.dumps(output, indent=2)
    except (RelinkError, ValueError) as e:
        return _error_text(e)


def main():
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
