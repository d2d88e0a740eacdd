"""GameObject hierarchy of Unity scenes and prefabs.

Resolves which GameObjects sit below a selection, following Transform
parent links and the stripped objects of nested prefab instances.

Key Concepts:
- Stripped objects: Placeholder references to objects inside nested prefabs
- PrefabInstance: Reference to an instantiated prefab, parented through
  m_Modification.m_TransformParent

Example:
    >>> doc = UnityYAMLDocument.load("Level.unity")
    >>> hierarchy = Hierarchy.build(doc)
    >>> hierarchy.descendants({100000})
    {100000, 100002, 100004}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from unityrelink.parser import (
    TRANSFORM_CLASS_IDS,
    UnityYAMLDocument,
    reference_file_id,
)

GAME_OBJECT_CLASS_ID = 1
PREFAB_INSTANCE_CLASS_ID = 1001


@dataclass
class Hierarchy:
    """Parent/child relationships between the objects of one document."""

    names: dict[int, str] = field(default_factory=dict)
    transform_of: dict[int, int] = field(default_factory=dict)
    game_object_of: dict[int, int] = field(default_factory=dict)
    children: dict[int, list[int]] = field(default_factory=dict)
    _instance_of: dict[int, int] = field(default_factory=dict, repr=False)
    _instance_members: dict[int, list[int]] = field(default_factory=dict, repr=False)
    _stripped_game_objects: set[int] = field(default_factory=set, repr=False)

    @classmethod
    def build(cls, doc: UnityYAMLDocument) -> Hierarchy:
        hierarchy = cls()
        hierarchy._build_indexes(doc)
        hierarchy._link_hierarchy(doc)
        return hierarchy

    def _build_indexes(self, doc: UnityYAMLDocument) -> None:
        for obj in doc.objects:
            content = obj.get_content()
            if content is None:
                continue

            if obj.stripped:
                # Stripped object -> PrefabInstance it comes from
                prefab_id = reference_file_id(content.get("m_PrefabInstance"))
                if prefab_id:
                    self._instance_of[obj.file_id] = prefab_id
                    self._instance_members.setdefault(prefab_id, []).append(obj.file_id)
                    if obj.class_id == GAME_OBJECT_CLASS_ID:
                        self._stripped_game_objects.add(obj.file_id)
                continue

            if obj.class_id == GAME_OBJECT_CLASS_ID:
                name = content.get("m_Name")
                self.names[obj.file_id] = "" if name is None else str(name)
            elif obj.class_id in TRANSFORM_CLASS_IDS:
                go_id = reference_file_id(content.get("m_GameObject"))
                if go_id:
                    self.transform_of[go_id] = obj.file_id
                    self.game_object_of[obj.file_id] = go_id

    def _link_hierarchy(self, doc: UnityYAMLDocument) -> None:
        for obj in doc.objects:
            content = obj.get_content()
            if content is None or obj.stripped:
                continue

            if obj.class_id in TRANSFORM_CLASS_IDS:
                father_id = reference_file_id(content.get("m_Father"))
                if father_id:
                    self.children.setdefault(father_id, []).append(obj.file_id)

            elif obj.class_id == PREFAB_INSTANCE_CLASS_ID:
                modification = content.get("m_Modification") or {}
                parent_id = reference_file_id(modification.get("m_TransformParent"))
                if not parent_id:
                    continue
                # The instance hangs below its transform parent as a whole
                for member_id in self._instance_members.get(obj.file_id, []):
                    self.children.setdefault(parent_id, []).append(member_id)

    def descendants(self, object_ids: Iterable[int]) -> set[int]:
        """Get the given GameObjects plus every GameObject below them.

        Stripped GameObjects of nested prefab instances are included, since
        components added to a nested prefab point at them.
        """
        result: set[int] = set()
        visited: set[int] = set()
        stack: list[int] = []

        for go_id in object_ids:
            result.add(go_id)
            if go_id in self.transform_of:
                stack.append(self.transform_of[go_id])
            elif go_id in self._instance_of:
                stack.extend(self._instance_members.get(self._instance_of[go_id], []))

        while stack:
            node_id = stack.pop()
            if node_id in visited:
                continue
            visited.add(node_id)

            if node_id in self.game_object_of:
                result.add(self.game_object_of[node_id])

            instance_id = self._instance_of.get(node_id)
            if instance_id is not None:
                for member_id in self._instance_members.get(instance_id, []):
                    if member_id not in visited:
                        stack.append(member_id)
            if node_id in self._stripped_game_objects:
                result.add(node_id)

            stack.extend(self.children.get(node_id, []))

        return result


def build_hierarchy(doc: UnityYAMLDocument) -> Hierarchy:
    """Build a hierarchy from a UnityYAMLDocument."""
    return Hierarchy.build(doc)


def collect_descendants(doc: UnityYAMLDocument, object_ids: Iterable[int]) -> set[int]:
    """Convenience wrapper: the selection plus all GameObjects below it."""
    return Hierarchy.build(doc).descendants(object_ids)
