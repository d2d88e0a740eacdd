"""In-place script link rewriting.

Relinking a component replaces exactly one line: the ``m_Script`` line of
its block. The document is re-read first, so a scan that went stale
because the file changed in between fails loudly instead of editing the
wrong component.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from unityrelink.document import SerializedDocument
from unityrelink.errors import NotFoundError, ResolutionError
from unityrelink.host import ProjectHost
from unityrelink.reflection import ScriptAsset
from unityrelink.scanner import MONOBEHAVIOUR_CLASS_ID, SCRIPT_FIELD, BrokenReference

# Type tag of a reference to a script asset
SCRIPT_REFERENCE_TYPE = 3


@dataclass(frozen=True)
class RelinkResult:
    """Outcome of one rewrite."""

    path: Path
    component_id: int
    line_index: int
    old_line: str
    new_line: str

    @property
    def line_number(self) -> int:
        """1-based line number of the rewritten line."""
        return self.line_index + 1


def format_script_line(indent: str, file_id: int, guid: str) -> str:
    return f"{indent}{SCRIPT_FIELD}: {{fileID: {file_id}, guid: {guid}, type: {SCRIPT_REFERENCE_TYPE}}}"


def locate_script_line(document: SerializedDocument, component_id: int, guid: str) -> int:
    """Find the index of a component's m_Script line that still holds ``guid``.

    Raises:
        NotFoundError: If the block or the line is gone
    """
    name = document.path.name if document.path else "<document>"

    span = document.find_block(component_id, MONOBEHAVIOUR_CLASS_ID)
    if span is None:
        raise NotFoundError(
            f"Component {component_id} not found in {name}; "
            "the file may have changed since it was scanned",
            component_id=component_id,
            guid=guid,
            path=document.path,
        )

    for i in span.body:
        text = document.lines[i].strip()
        if text.startswith(f"{SCRIPT_FIELD}:") and guid in text:
            return i

    raise NotFoundError(
        f"No {SCRIPT_FIELD} line with guid {guid} in component {component_id} of {name}",
        component_id=component_id,
        guid=guid,
        path=document.path,
    )


def apply_fix(
    reference: BrokenReference,
    new_script: ScriptAsset | None,
    host: ProjectHost,
) -> RelinkResult:
    """Relink a broken component to another script.

    Args:
        reference: The broken reference to fix
        new_script: Replacement script (default: ``reference.new_script``)
        host: Host used to resolve the script and reload the asset

    Returns:
        RelinkResult describing the rewritten line

    Raises:
        ResolutionError: If the script has no (fileID, guid) identity
        NotFoundError: If the block or line is gone; the file is not touched
        DocumentIOError: If the document cannot be read or written
    """
    script = new_script if new_script is not None else reference.new_script
    if script is None:
        raise ResolutionError(f"No replacement script chosen for component {reference.component_id}")

    identity = host.script_identity(script)
    if identity is None:
        raise ResolutionError(
            f"Cannot resolve '{script.display_name}' to a fileID and guid; "
            "it may not be compiled or imported yet"
        )
    file_id, guid = identity

    document = SerializedDocument.load(reference.file_path)
    index = locate_script_line(document, reference.component_id, reference.broken_guid)

    old_line = document.lines[index]
    indent = old_line[: len(old_line) - len(old_line.lstrip())]
    new_line = format_script_line(indent, file_id, guid)

    path = document.with_line(index, new_line).save()
    reference.new_script = script
    host.reload_asset(path)

    return RelinkResult(
        path=path,
        component_id=reference.component_id,
        line_index=index,
        old_line=old_line,
        new_line=new_line,
    )
