"""Command-line interface for unityrelink.

Provides commands for finding Missing Script components in Unity scenes and
prefabs and relinking them to the right script.
"""

from __future__ import annotations

import json
import sys
import warnings
from pathlib import Path
from typing import Callable

import click

from unityrelink import __version__
from unityrelink.asset_index import find_unity_project_root, read_meta_guid
from unityrelink.bridge.unity_client import UnityBridgeError, UnityClient
from unityrelink.catalog import is_catalog_built
from unityrelink.dll_inspector import compute_unity_file_id, inspect_dll, resolve_dll_class_name
from unityrelink.errors import RelinkError, TruncatedScan
from unityrelink.host import UnityProject
from unityrelink.ranker import MAX_DISPLAYED_CANDIDATES, ScriptCandidate
from unityrelink.resolver import MissingScriptResolver
from unityrelink.scanner import BrokenReference, ResolutionPolicy
from unityrelink.script_parser import MONO_SCRIPT_FILE_ID, main_class_for, parse_script_file
from unityrelink.settings import Settings, settings_path

BACKUP_REMINDER = "Files are overwritten in place. Commit or back up your work first."


def create_progress_bar(
    total: int,
    label: str = "Processing",
    show_eta: bool = True,
) -> tuple[Callable[[int, int], None], Callable[[], None]]:
    """Create a progress bar and return update/close callbacks.

    Args:
        total: Total number of items
        label: Progress bar label
        show_eta: Whether to show ETA

    Returns:
        Tuple of (update_callback, close_callback)
    """
    bar = click.progressbar(
        length=total,
        label=label,
        show_eta=show_eta,
        show_percent=True,
    )
    bar.__enter__()

    def update(current: int, total: int) -> None:
        bar.update(1)

    def close() -> None:
        bar.__exit__(None, None, None)

    return update, close


def _catalog_progress() -> tuple[Callable[[int, int], None], Callable[[], None]]:
    """Progress callbacks that open a bar once the number of scripts is known."""
    state: dict[str, Callable] = {}

    def update(current: int, total: int) -> None:
        if "update" not in state:
            state["update"], state["close"] = create_progress_bar(total, label="Cataloging scripts")
        state["update"](current, total)

    def close() -> None:
        if "close" in state:
            state["close"]()

    return update, close


def _project_root(project: Path | None, start: Path) -> Path:
    if project is not None:
        return project
    root = find_unity_project_root(start)
    if root is None:
        click.echo(f"Error: {start} is not inside a Unity project", err=True)
        click.echo("Use --project to specify the project root", err=True)
        sys.exit(1)
    return root


def _make_resolver(
    root: Path,
    policy: str = "local-id",
    limit: int | None = None,
    editor: UnityClient | None = None,
    show_progress: bool = True,
) -> MissingScriptResolver:
    try:
        settings = Settings.load(root)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    if limit is not None:
        settings.search_limit = limit
    resolver = MissingScriptResolver(
        UnityProject(root, editor=editor),
        settings,
        policy=ResolutionPolicy(policy),
    )
    if show_progress and not is_catalog_built():
        resolver.progress_callback, close = _catalog_progress()
        # Build now so the bar is closed before any output
        try:
            resolver.catalog
        finally:
            close()
        resolver.progress_callback = None
    return resolver


def _format_candidate(candidate: ScriptCandidate, field_count: int) -> str:
    odin = " (Odin)" if candidate.is_addon else ""
    return f"{candidate.name}  {candidate.match_count}/{field_count} matched fields{odin}"


def _echo_reference(ref: BrokenReference, show_data: bool) -> None:
    click.echo(f"Missing script on {ref.owner}, component {ref.component_id}")
    click.echo(f"  Script: fileID {ref.broken_link.file_id}, guid {ref.broken_guid}")
    if ref.addon_serialized:
        click.echo(
            "  Odin Serializer fields detected. "
            "Original script was likely a 'SerializedMonoBehaviour'."
        )
    if ref.field_names:
        click.echo(f"  Fields: {', '.join(ref.field_names)}")

    if not ref.field_names and not ref.addon_serialized:
        click.echo("  No serialized fields to match on")
    elif not ref.candidates:
        click.echo("  No matching scripts found")
    else:
        click.echo("  Candidates:")
        for candidate in ref.candidates[:MAX_DISPLAYED_CANDIDATES]:
            click.echo(f"    {_format_candidate(candidate, len(ref.field_names))}")
            if candidate.matched_fields:
                click.echo(f"      matched:   {', '.join(candidate.matched_fields)}")
            if candidate.unmatched_fields:
                click.echo(f"      unmatched: {', '.join(candidate.unmatched_fields)}")
        hidden = len(ref.candidates) - MAX_DISPLAYED_CANDIDATES
        if hidden > 0:
            click.echo(f"    ... and {hidden} more")

    if show_data:
        click.echo("  Data:")
        for line in ref.data_preview.splitlines():
            click.echo(f"    {line}")


@click.group()
@click.version_option(version=__version__, prog_name="unityrelink")
def main() -> None:
    """Unity Missing Script resolver.

    Finds components whose script can no longer be found, suggests the
    scripts whose fields match the data left on them, and relinks them.
    """
    pass


@main.command()
@click.argument("file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--object",
    "-o",
    "object_ids",
    type=int,
    multiple=True,
    help="Only scan this GameObject fileID (repeatable)",
)
@click.option(
    "--no-children",
    is_flag=True,
    help="Do not include the children of --object GameObjects",
)
@click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Unity project root (default: detected from FILE)",
)
@click.option(
    "--limit",
    type=click.IntRange(min=0),
    help="Maximum number of broken components to report (0: no limit)",
)
@click.option(
    "--policy",
    type=click.Choice(["local-id", "guid-only"]),
    default="local-id",
    help="local-id also treats a script as missing when its class is gone from the file",
)
@click.option(
    "--show-data",
    is_flag=True,
    help="Show the serialized data of each broken component",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format (default: text)",
)
def scan(
    file: Path,
    object_ids: tuple[int, ...],
    no_children: bool,
    project: Path | None,
    limit: int | None,
    policy: str,
    show_data: bool,
    output_format: str,
) -> None:
    """Find components with a missing script.

    Examples:

        # Scan a whole scene
        unityrelink scan Assets/Scenes/Level.unity

        # Scan one GameObject and its children
        unityrelink scan Assets/Prefabs/Enemy.prefab --object 1234567

        # Machine-readable output
        unityrelink scan Level.unity --format json
    """
    root = _project_root(project, file)
    resolver = _make_resolver(root, policy, limit, show_progress=output_format == "text")

    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", TruncatedScan)
            result = resolver.scan_file(
                file,
                list(object_ids) if object_ids else None,
                include_children=not no_children,
            )
    except (RelinkError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if output_format == "json":
        output = {
            "file": str(file),
            "missing": [ref.to_dict(MAX_DISPLAYED_CANDIDATES) for ref in result],
            "truncated": result.truncated,
        }
        click.echo(json.dumps(output, indent=2))
        return

    if not result.references:
        click.echo(f"{file}: no missing scripts")
        return

    click.echo(f"{file}: {len(result)} missing script(s)")
    for ref in result:
        click.echo()
        _echo_reference(ref, show_data)

    if result.truncation is not None:
        click.echo()
        click.echo(f"Warning: {result.truncation}", err=True)


@main.command()
@click.argument("file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--component",
    "-c",
    "component_id",
    type=int,
    required=True,
    help="fileID of the broken MonoBehaviour",
)
@click.option(
    "--script",
    "-s",
    "script_name",
    help="Replacement script: class name, full class name or script file name",
)
@click.option(
    "--best",
    is_flag=True,
    help="Use the best ranked candidate",
)
@click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Unity project root (default: detected from FILE)",
)
@click.option(
    "--yes",
    "-y",
    is_flag=True,
    help="Do not ask for confirmation",
)
@click.option(
    "--refresh-editor",
    is_flag=True,
    help="Ask the running Unity Editor to reimport the file",
)
def fix(
    file: Path,
    component_id: int,
    script_name: str | None,
    best: bool,
    project: Path | None,
    yes: bool,
    refresh_editor: bool,
) -> None:
    """Relink a component with a missing script.

    Only the component's m_Script line changes; its serialized data is kept.

    Examples:

        # Relink to a named script
        unityrelink fix Level.unity --component 114000011 --script PlayerMover

        # Relink to the best match without asking
        unityrelink fix Level.unity -c 114000011 --best --yes
    """
    if not script_name and not best:
        click.echo("Error: Specify --script or --best", err=True)
        sys.exit(1)
    if script_name and best:
        click.echo("Error: --script and --best cannot be used together", err=True)
        sys.exit(1)

    root = _project_root(project, file)
    editor = UnityClient() if refresh_editor else None
    resolver = _make_resolver(root, editor=editor)

    try:
        reference = resolver.find_reference(file, component_id)
        if best:
            if not reference.candidates:
                click.echo(f"Error: No candidate scripts for component {component_id}", err=True)
                sys.exit(1)
            script = reference.candidates[0].script
        else:
            script = resolver.script_by_name(script_name, reference)
    except (RelinkError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Relink component {component_id} on {reference.owner}")
    click.echo(f"  from: fileID {reference.broken_link.file_id}, guid {reference.broken_guid}")
    click.echo(f"  to:   {script.display_name} ({script.path})")

    if not (yes or resolver.settings.skip_confirmation):
        click.echo(BACKUP_REMINDER)
        if not click.confirm("Continue?"):
            click.echo("Aborted")
            return

    try:
        result = resolver.apply(reference, script)
    except UnityBridgeError as e:
        click.echo(f"Fixed {file}, but the Unity Editor could not refresh it: {e}", err=True)
        return
    except RelinkError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Fixed {result.path}:{result.line_number}")
    click.echo(f"  {result.new_line.strip()}")


@main.command()
@click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Unity project root (default: detected from the current directory)",
)
@click.option(
    "--rebuild",
    is_flag=True,
    help="Rescan scripts even if a catalog is cached",
)
@click.option(
    "--odin-only",
    is_flag=True,
    help="Only list classes based on SerializedMonoBehaviour",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format (default: text)",
)
def catalog(
    project: Path | None,
    rebuild: bool,
    odin_only: bool,
    output_format: str,
) -> None:
    """List the scripts that missing components can be relinked to."""
    root = _project_root(project, Path.cwd())
    resolver = _make_resolver(root, show_progress=False)

    update, close = _catalog_progress() if output_format == "text" else (None, None)
    resolver.progress_callback = update
    try:
        classes = resolver.rebuild_catalog() if rebuild else resolver.catalog
    finally:
        if close:
            close()

    entries = classes.addon_entries() if odin_only else list(classes)

    if output_format == "json":
        output = {
            "odinInstalled": classes.addon_base is not None,
            "classes": [
                {
                    "name": entry.name,
                    "path": str(entry.script.path) if entry.script.path else None,
                    "guid": entry.script.guid,
                    "fileID": entry.script.file_id,
                    "odin": entry.is_addon,
                    "fields": list(entry.field_names),
                }
                for entry in entries
            ],
        }
        click.echo(json.dumps(output, indent=2))
        return

    for entry in entries:
        odin = " (Odin)" if entry.is_addon else ""
        click.echo(f"{entry.name}{odin}  [{entry.script.path}]")
        if entry.field_names:
            click.echo(f"  {', '.join(entry.field_names)}")
    click.echo(f"\n{len(entries)} class(es)")


@main.command()
@click.argument("asset", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--file-id",
    type=int,
    help="Show which class of a .dll this fileID refers to",
)
def guid(asset: Path, file_id: int | None) -> None:
    """Show the GUID of an asset and the fileIDs of the scripts it holds.

    Examples:

        unityrelink guid Assets/Scripts/PlayerMover.cs
        unityrelink guid Assets/Plugins/Game.dll --file-id -1234567
    """
    asset_guid = read_meta_guid(asset)
    if asset_guid is None:
        click.echo(f"Error: No GUID found in {asset}.meta", err=True)
        sys.exit(1)

    click.echo(f"{asset}")
    click.echo(f"  guid: {asset_guid}")

    suffix = asset.suffix.lower()
    if suffix == ".cs":
        main_class = main_class_for(asset, parse_script_file(asset))
        name = main_class.full_name if main_class else "(no class named after the file)"
        click.echo(f"  fileID: {MONO_SCRIPT_FILE_ID}  {name}")
    elif suffix == ".dll":
        if file_id is not None:
            name = resolve_dll_class_name(asset, file_id)
            if name is None:
                click.echo(f"Error: No class in {asset.name} has fileID {file_id}", err=True)
                sys.exit(1)
            click.echo(f"  fileID: {file_id}  {name}")
            return
        for type_info in inspect_dll(asset):
            if type_info.is_interface or type_info.name.startswith("<"):
                continue
            type_file_id = compute_unity_file_id(type_info.namespace, type_info.name)
            click.echo(f"  fileID: {type_file_id}  {type_info.full_name}")


@main.command()
@click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Unity project root (default: detected from the current directory)",
)
@click.option(
    "--search-limit",
    type=click.IntRange(min=0),
    help="Maximum number of broken components per scan (0: no limit)",
)
@click.option(
    "--skip-confirmation/--confirm",
    default=None,
    help="Apply fixes without asking for confirmation",
)
def config(
    project: Path | None,
    search_limit: int | None,
    skip_confirmation: bool | None,
) -> None:
    """Show or change the resolver settings of a project."""
    root = _project_root(project, Path.cwd())
    settings = Settings.load(root, use_environment=False)

    if search_limit is not None or skip_confirmation is not None:
        if search_limit is not None:
            settings.search_limit = search_limit
        if skip_confirmation is not None:
            settings.skip_confirmation = skip_confirmation
        path = settings.save(root)
        click.echo(f"Saved {path}")
    else:
        click.echo(f"{settings_path(root)}")

    click.echo(f"  search_limit: {settings.search_limit}")
    click.echo(f"  skip_confirmation: {str(settings.skip_confirmation).lower()}")


if __name__ == "__main__":
    main()
