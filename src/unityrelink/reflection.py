"""Class metadata records.

These stand in for the type information the Unity Editor gets through
reflection: a script asset (MonoScript), the class it defines, and that
class's declared fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class ClassField:
    """A field declared directly on a class."""

    name: str
    field_type: str = ""
    is_public: bool = False
    has_serialize_field: bool = False
    is_non_serialized: bool = False
    is_static: bool = False

    @property
    def is_serialized(self) -> bool:
        """Whether Unity serializes this field.

        Instance fields are serialized if they are public or carry
        [SerializeField], unless marked [NonSerialized].
        """
        if self.is_static or self.is_non_serialized:
            return False
        return self.is_public or self.has_serialize_field


@dataclass
class ScriptClass:
    """A class definition, from C# source or assembly metadata."""

    name: str
    namespace: str | None = None
    base_name: str | None = None
    fields: list[ClassField] = field(default_factory=list)
    is_abstract: bool = False

    @property
    def full_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}.{self.name}"
        return self.name

    def __repr__(self) -> str:
        return f"ScriptClass({self.full_name}, base={self.base_name})"


@dataclass(eq=False)
class ScriptAsset:
    """A script asset as Unity sees it, addressed by (fileID, guid).

    ``script_class`` is None when the asset exists but no class can be
    bound to it (for example a .cs file whose class name differs from the
    file name).
    """

    name: str
    path: Path | None = None
    guid: str | None = None
    file_id: int | None = None
    script_class: ScriptClass | None = None

    @property
    def display_name(self) -> str:
        if self.script_class is not None:
            return self.script_class.full_name
        return self.name

    def __repr__(self) -> str:
        return f"ScriptAsset({self.display_name}, fileID={self.file_id}, guid={self.guid})"
