"""Unity YAML object parser using rapidyaml.

Parses each object block of a scene or prefab into Python data. Only the
hierarchy traversal needs the parsed form; everything that edits documents
works on lines (see ``unityrelink.document``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

import ryml

from unityrelink.document import SerializedDocument

# Common Unity ClassIDs
CLASS_IDS = {
    1: "GameObject",
    4: "Transform",
    114: "MonoBehaviour",
    224: "RectTransform",
    1001: "PrefabInstance",
}

TRANSFORM_CLASS_IDS = (4, 224)


def _iter_children(tree: Any, node_id: int) -> list[int]:
    """Iterate over children of a node."""
    if not tree.has_children(node_id):
        return []
    children = []
    child = tree.first_child(node_id)
    while child != ryml.NONE:
        children.append(child)
        child = tree.next_sibling(child)
    return children


def _to_python(tree: Any, node_id: int) -> Any:
    """Convert rapidyaml tree node to Python object."""
    if tree.is_map(node_id):
        result = {}
        for child in _iter_children(tree, node_id):
            if tree.has_key(child):
                key = bytes(tree.key(child)).decode("utf-8")
            else:
                key = ""
            result[key] = _to_python(tree, child)
        return result
    elif tree.is_seq(node_id):
        return [_to_python(tree, child) for child in _iter_children(tree, node_id)]
    elif tree.has_val(node_id):
        val_mv = tree.val(node_id)
        if val_mv is None:
            return None
        val = bytes(val_mv).decode("utf-8")

        if val in ("null", "~", ""):
            return None

        # Integers (fileIDs); keep strings with leading zeros as-is
        stripped = val.lstrip("-")
        if stripped.isdigit() and not (len(stripped) > 1 and stripped.startswith("0")):
            return int(val)

        try:
            return float(val)
        except ValueError:
            return val
    return None


@dataclass
class UnityYAMLObject:
    """Represents a single Unity YAML document/object."""

    class_id: int
    file_id: int
    data: dict[str, Any]
    stripped: bool = False

    @property
    def class_name(self) -> str:
        return CLASS_IDS.get(self.class_id, f"Unknown({self.class_id})")

    def get_content(self) -> dict[str, Any] | None:
        """Get the content under the root key (e.g. 'GameObject')."""
        if self.data:
            content = next(iter(self.data.values()))
            if isinstance(content, dict):
                return content
        return None

    def __repr__(self) -> str:
        return f"UnityYAMLObject(class={self.class_name}, fileID={self.file_id})"


@dataclass
class UnityYAMLDocument:
    """All objects of a Unity YAML file."""

    objects: list[UnityYAMLObject] = field(default_factory=list)
    source_path: Path | None = None

    def __iter__(self) -> Iterator[UnityYAMLObject]:
        return iter(self.objects)

    def __len__(self) -> int:
        return len(self.objects)

    @classmethod
    def load(cls, path: str | Path) -> UnityYAMLDocument:
        """Load and parse a Unity YAML file from disk."""
        return cls.from_lines(SerializedDocument.load(path))

    @classmethod
    def parse(cls, content: str) -> UnityYAMLDocument:
        """Parse Unity YAML content from a string."""
        return cls.from_lines(SerializedDocument.parse(content))

    @classmethod
    def from_lines(cls, document: SerializedDocument) -> UnityYAMLDocument:
        """Parse every object block of an already loaded document.

        Raises:
            ValueError: If a block is not valid YAML
        """
        doc = cls(source_path=document.path)

        for span in document.iter_blocks():
            body = "\n".join(document.lines[span.start + 1:span.end])
            data: Any = {}
            if body.strip():
                try:
                    tree = ryml.parse_in_arena(body.encode("utf-8"))
                    data = _to_python(tree, tree.root_id())
                except Exception as e:
                    raise ValueError(
                        f"Failed to parse document at line {span.start + 1} "
                        f"(class_id={span.class_id}, file_id={span.file_id}): {e}"
                    ) from e
            doc.objects.append(
                UnityYAMLObject(
                    class_id=span.class_id,
                    file_id=span.file_id,
                    data=data if isinstance(data, dict) else {},
                    stripped=span.stripped,
                )
            )

        return doc


def reference_file_id(ref: Any) -> int:
    """Get the fileID of a ``{fileID: ...}`` reference, 0 if absent."""
    if isinstance(ref, dict):
        file_id = ref.get("fileID", 0)
        if isinstance(file_id, int):
            return file_id
    return 0
