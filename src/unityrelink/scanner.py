"""Broken script reference scanner.

Finds MonoBehaviour components whose ``m_Script`` link no longer resolves
to a class ("Missing Script") and recovers the names of the fields that are
still serialized in their block.

The format is scanned as lines with a small state machine: look for a
``--- !u!114 &<id>`` header, then read field lines until the next header.
Unity always writes component blocks as a flat, two-space indented field
list, which is all this relies on.
"""

from __future__ import annotations

import re
import warnings
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Iterator

from unityrelink.document import BlockSpan, SerializedDocument
from unityrelink.errors import TruncatedScan
from unityrelink.host import ProjectHost

if TYPE_CHECKING:
    from unityrelink.ranker import ScriptCandidate
    from unityrelink.reflection import ScriptAsset

MONOBEHAVIOUR_CLASS_ID = 114
GAME_OBJECT_CLASS_ID = 1

OWNER_FIELD = "m_GameObject"
SCRIPT_FIELD = "m_Script"

# Unity bookkeeping fields that never belong to the script's own data
IGNORED_FIELDS = frozenset({
    "m_Name",
    "m_EditorClassIdentifier",
})

# Fields written by Odin Serializer's SerializedMonoBehaviour
ODIN_MARKER_FIELDS = frozenset({
    "SerializedFormat",
    "SerializedBytes",
    "ReferencedUnityObjects",
    "SerializedBytesString",
    "Prefab",
    "PrefabModificationsReferencedUnityObjects",
    "PrefabModifications",
    "SerializationNodes",
    "serializationData",
})

OWNER_LINE_PATTERN = re.compile(rf"^\s*{OWNER_FIELD}:.*?fileID: (-?\d+)")
SCRIPT_LINE_PATTERN = re.compile(rf"^\s*{SCRIPT_FIELD}:")
SCRIPT_LINK_PATTERN = re.compile(r"fileID: (-?\d+), guid: ([a-f0-9]{32})")
FIELD_NAME_PATTERN = re.compile(r"^\s+([a-zA-Z_]\w*):")
OBJECT_NAME_PATTERN = re.compile(r"^\s+m_Name: ?(.*)$")

# Field data lines are indented by at least this much
DATA_INDENT = "  "


class ResolutionPolicy(Enum):
    """How to decide that a script link is broken."""

    GUID_ONLY = "guid-only"  # broken iff no asset has the guid
    LOCAL_ID = "local-id"  # also broken if the asset has no script with the fileID


@dataclass(frozen=True)
class ScriptLink:
    """The ``{fileID, guid}`` pair of an ``m_Script`` line."""

    file_id: int
    guid: str


@dataclass
class ComponentBlock:
    """A MonoBehaviour block and the bookkeeping fields read from it."""

    file_id: int
    span: BlockSpan
    owner_id: int = 0
    script: ScriptLink | None = None
    data_start: int = -1


@dataclass(frozen=True)
class ObjectRef:
    """Handle on the GameObject that owns a component."""

    file_id: int
    name: str | None = None

    def __str__(self) -> str:
        if self.name:
            return f"'{self.name}' (fileID {self.file_id})"
        return f"fileID {self.file_id}"


@dataclass(eq=False)
class BrokenReference:
    """A component whose script can no longer be found."""

    owner: ObjectRef
    file_path: Path
    component_id: int
    broken_link: ScriptLink
    field_names: list[str] = field(default_factory=list)
    addon_serialized: bool = False
    data_preview: str = ""
    new_script: ScriptAsset | None = None
    candidates: list[ScriptCandidate] = field(default_factory=list)

    @property
    def broken_guid(self) -> str:
        return self.broken_link.guid

    def to_dict(self, max_candidates: int | None = None) -> dict[str, Any]:
        candidates = self.candidates if max_candidates is None else self.candidates[:max_candidates]
        return {
            "file": str(self.file_path),
            "owner": {"fileID": self.owner.file_id, "name": self.owner.name},
            "componentFileID": self.component_id,
            "brokenScript": {"fileID": self.broken_link.file_id, "guid": self.broken_link.guid},
            "fields": list(self.field_names),
            "odinSerialized": self.addon_serialized,
            "candidates": [c.to_dict() for c in candidates],
        }


@dataclass
class ScanResult:
    """Broken references found by one scan pass."""

    references: list[BrokenReference] = field(default_factory=list)
    files_scanned: int = 0
    truncation: TruncatedScan | None = None

    def __iter__(self) -> Iterator[BrokenReference]:
        return iter(self.references)

    def __len__(self) -> int:
        return len(self.references)

    @property
    def truncated(self) -> bool:
        return self.truncation is not None


def parse_component_blocks(document: SerializedDocument) -> Iterator[ComponentBlock]:
    """Yield every MonoBehaviour block with its owner and script link."""
    for span in document.iter_blocks(MONOBEHAVIOUR_CLASS_ID):
        block = ComponentBlock(file_id=span.file_id, span=span)

        for i in span.body:
            line = document.lines[i]
            if not block.owner_id:
                owner_match = OWNER_LINE_PATTERN.match(line)
                if owner_match:
                    block.owner_id = int(owner_match.group(1))
                    continue
            if block.data_start < 0 and SCRIPT_LINE_PATTERN.match(line):
                link_match = SCRIPT_LINK_PATTERN.search(line)
                if link_match:
                    block.script = ScriptLink(int(link_match.group(1)), link_match.group(2))
                block.data_start = i + 1

        yield block


def is_link_broken(
    host: ProjectHost,
    link: ScriptLink,
    policy: ResolutionPolicy = ResolutionPolicy.LOCAL_ID,
) -> bool:
    """Check whether a script link resolves to a class the host knows."""
    path = host.guid_to_path(link.guid)
    if path is None:
        # The script file itself is missing
        return True
    if policy is ResolutionPolicy.GUID_ONLY:
        return False
    # The file exists, but the class with this fileID is gone from it
    return link.file_id not in host.script_local_ids(path)


def extract_fields(
    document: SerializedDocument,
    block: ComponentBlock,
) -> tuple[list[str], bool, str]:
    """Read the serialized field names of a component block.

    Returns:
        Tuple of (field names in document order, Odin markers seen, raw preview)
    """
    names: list[str] = []
    addon = False
    preview: list[str] = []

    if block.data_start < 0:
        return names, addon, ""

    for i in range(block.data_start, block.span.end):
        line = document.lines[i]
        if not line.strip() or not line.startswith(DATA_INDENT):
            continue
        preview.append(line.strip())

        match = FIELD_NAME_PATTERN.match(line)
        if not match:
            continue
        name = match.group(1)
        if name in IGNORED_FIELDS:
            continue
        if name in ODIN_MARKER_FIELDS:
            addon = True
            continue
        names.append(name)

    return names, addon, "\n".join(preview)


def object_names(document: SerializedDocument) -> dict[int, str]:
    """Map GameObject fileIDs to their m_Name."""
    names: dict[int, str] = {}
    for span in document.iter_blocks(GAME_OBJECT_CLASS_ID):
        for i in span.body:
            match = OBJECT_NAME_PATTERN.match(document.lines[i])
            if match:
                names[span.file_id] = match.group(1).strip()
                break
    return names


def scan_document(
    document: SerializedDocument,
    host: ProjectHost,
    owner_ids: Iterable[int] | None = None,
    policy: ResolutionPolicy = ResolutionPolicy.LOCAL_ID,
    limit: int | None = None,
) -> ScanResult:
    """Find the broken script references in one document.

    Args:
        document: Document to scan
        host: Host used to resolve script links
        owner_ids: Only report components on these GameObjects (None: all)
        policy: Broken-link test to apply
        limit: Maximum number of references to collect (None or 0: no limit)

    Returns:
        ScanResult; if more references existed than ``limit``, ``truncated`` is
        set and a TruncatedScan warning is emitted
    """
    result = ScanResult(files_scanned=1)
    _scan_into(result, document, host, owner_ids, policy, limit)
    if result.truncation is not None:
        warnings.warn(result.truncation, stacklevel=2)
    return result


def scan_selection(
    host: ProjectHost,
    selection: Iterable[tuple[Path, int]],
    include_children: bool = True,
    policy: ResolutionPolicy = ResolutionPolicy.LOCAL_ID,
    limit: int | None = None,
) -> ScanResult:
    """Scan the files backing a selection of GameObjects.

    Objects are grouped by file so each file is read once; with
    ``include_children`` every GameObject below a selected one is included.

    Args:
        host: Host used to resolve links and expand the selection
        selection: (file path, GameObject fileID) pairs
        include_children: Also scan descendants of the selected objects
        policy: Broken-link test to apply
        limit: Maximum number of references over all files

    Raises:
        DocumentIOError: If a backing file cannot be read
    """
    grouped: dict[Path, list[int]] = {}
    for path, object_id in selection:
        grouped.setdefault(Path(path), []).append(object_id)

    result = ScanResult()
    for path, object_ids in grouped.items():
        document = SerializedDocument.load(path)
        result.files_scanned += 1
        owner_ids = host.expand_selection(document, object_ids) if include_children else set(object_ids)
        if not _scan_into(result, document, host, owner_ids, policy, limit):
            break

    if result.truncation is not None:
        warnings.warn(result.truncation, stacklevel=2)

    return result


def _scan_into(
    result: ScanResult,
    document: SerializedDocument,
    host: ProjectHost,
    owner_ids: Iterable[int] | None,
    policy: ResolutionPolicy,
    limit: int | None,
) -> bool:
    """Append broken references from ``document`` to ``result``.

    Returns:
        False once the limit has cut the scan short
    """
    owners = set(owner_ids) if owner_ids is not None else None
    names: dict[int, str] | None = None
    path = document.path or Path()

    for block in parse_component_blocks(document):
        if owners is not None and block.owner_id not in owners:
            continue
        if block.script is None or not is_link_broken(host, block.script, policy):
            continue

        if limit and len(result.references) >= limit:
            result.truncation = TruncatedScan(
                f"Search limit of {limit} reached; further broken references were not scanned"
            )
            return False

        if names is None:
            names = object_names(document)

        field_names, addon, preview = extract_fields(document, block)
        result.references.append(
            BrokenReference(
                owner=ObjectRef(block.owner_id, names.get(block.owner_id)),
                file_path=path,
                component_id=block.file_id,
                broken_link=block.script,
                field_names=field_names,
                addon_serialized=addon,
                data_preview=preview,
            )
        )

    return True
