"""Host environment queries.

Everything the relinking engine needs to know about the project it works
on goes through ``ProjectHost``: which script classes exist and what fields
they declare, how a GUID resolves to an asset, which objects sit below a
selection, and how to tell the editor that a file changed.

``UnityProject`` answers these questions from the files of a Unity project
on disk (``.meta`` GUIDs, C# sources and .NET assemblies), optionally
forwarding reloads to a running Unity Editor through the bridge.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Iterator

from unityrelink.asset_index import GUIDIndex, build_guid_index
from unityrelink.dll_inspector import (
    DllTypeInfo,
    clear_dll_cache,
    compute_unity_file_id,
    inspect_dll_cached,
)
from unityrelink.reflection import ClassField, ScriptAsset, ScriptClass
from unityrelink.script_parser import MONO_SCRIPT_FILE_ID, main_class_for, parse_script_file

if TYPE_CHECKING:
    from unityrelink.bridge.unity_client import UnityClient
    from unityrelink.document import SerializedDocument

# Engine classes the project never ships but every script inherits from
ENGINE_CLASSES = (
    ScriptClass(name="Object", namespace="UnityEngine"),
    ScriptClass(name="Component", namespace="UnityEngine", base_name="UnityEngine.Object"),
    ScriptClass(name="Behaviour", namespace="UnityEngine", base_name="UnityEngine.Component"),
    ScriptClass(
        name="MonoBehaviour",
        namespace="UnityEngine",
        base_name="UnityEngine.Behaviour",
    ),
    ScriptClass(
        name="UIBehaviour",
        namespace="UnityEngine.EventSystems",
        base_name="UnityEngine.MonoBehaviour",
        is_abstract=True,
    ),
)


class ProjectHost(ABC):
    """Abstract interface to the host's object model and asset database."""

    @property
    def cache_key(self) -> object:
        """Identifies the project whose classes a cached catalog describes."""
        return id(self)

    @abstractmethod
    def iter_scripts(self) -> Iterator[ScriptAsset]:
        """Yield every script asset: project sources first, then compiled libraries."""

    @abstractmethod
    def find_class(self, name: str) -> ScriptClass | None:
        """Look up a class by full name, or by simple name if ``name`` has no dot."""

    @abstractmethod
    def guid_to_path(self, guid: str) -> Path | None:
        """Resolve an asset GUID to its path, None if no asset has it."""

    @abstractmethod
    def script_local_ids(self, path: Path) -> set[int]:
        """Local identifiers of the MonoScripts stored in the asset at ``path``."""

    def script_identity(self, script: ScriptAsset) -> tuple[int, str] | None:
        """Get the (fileID, guid) pair that references ``script``."""
        if script.guid and script.file_id is not None:
            return script.file_id, script.guid
        return None

    def expand_selection(
        self,
        document: SerializedDocument,
        object_ids: Iterable[int],
    ) -> set[int]:
        """Get the selected objects plus all their descendants."""
        return set(object_ids)

    def reload_asset(self, path: Path) -> None:
        """Tell the host that the file at ``path`` was rewritten."""


class UnityProject(ProjectHost):
    """Host backed by the files of a Unity project.

    Args:
        project_root: Directory holding the project's Assets folder
        include_packages: Also index Packages and Library/PackageCache
        editor: Optional bridge client used to refresh rewritten assets
    """

    def __init__(
        self,
        project_root: Path,
        include_packages: bool = True,
        editor: UnityClient | None = None,
    ):
        self.project_root = Path(project_root)
        self.include_packages = include_packages
        self.editor = editor
        self._guid_index: GUIDIndex | None = None
        self._scripts: list[ScriptAsset] | None = None
        self._classes_by_full_name: dict[str, ScriptClass] = {}
        self._classes_by_name: dict[str, ScriptClass] = {}

    @property
    def cache_key(self) -> object:
        return self.project_root.resolve()

    @property
    def guid_index(self) -> GUIDIndex:
        if self._guid_index is None:
            self._guid_index = build_guid_index(
                self.project_root, include_packages=self.include_packages
            )
        return self._guid_index

    def refresh(self) -> None:
        """Forget indexed assets and classes so the next query rescans the project."""
        self._guid_index = None
        self._scripts = None
        self._classes_by_full_name.clear()
        self._classes_by_name.clear()
        clear_dll_cache()

    def iter_scripts(self) -> Iterator[ScriptAsset]:
        if self._scripts is None:
            self._load_scripts()
        assert self._scripts is not None
        return iter(self._scripts)

    def find_class(self, name: str) -> ScriptClass | None:
        if self._scripts is None:
            self._load_scripts()
        if "." not in name:
            return self._classes_by_name.get(name)
        info = self._classes_by_full_name.get(name)
        if info is None:
            # Partially qualified names, e.g. "OdinInspector.SerializedMonoBehaviour"
            candidate = self._classes_by_name.get(name.rsplit(".", 1)[1])
            if candidate is not None and candidate.full_name.endswith("." + name):
                info = candidate
        return info

    def guid_to_path(self, guid: str) -> Path | None:
        return self.guid_index.get_path(guid)

    def script_local_ids(self, path: Path) -> set[int]:
        suffix = path.suffix.lower()
        absolute = self.guid_index.absolute(path)
        if suffix == ".cs":
            return {MONO_SCRIPT_FILE_ID} if absolute.is_file() else set()
        if suffix == ".dll":
            return {
                compute_unity_file_id(t.namespace, t.name)
                for t in inspect_dll_cached(absolute)
                if not t.is_interface
            }
        return set()

    def expand_selection(
        self,
        document: SerializedDocument,
        object_ids: Iterable[int],
    ) -> set[int]:
        from unityrelink.hierarchy import collect_descendants
        from unityrelink.parser import UnityYAMLDocument

        return collect_descendants(UnityYAMLDocument.from_lines(document), object_ids)

    def reload_asset(self, path: Path) -> None:
        if self.editor is None:
            return
        try:
            asset_path = Path(path).resolve().relative_to(self.project_root.resolve())
        except ValueError:
            asset_path = Path(path)
        self.editor.refresh_asset(asset_path.as_posix())

    def _register_class(self, info: ScriptClass) -> None:
        self._classes_by_full_name.setdefault(info.full_name, info)
        self._classes_by_name.setdefault(info.name, info)

    def _load_scripts(self) -> None:
        scripts: list[ScriptAsset] = []
        index = self.guid_index

        for info in ENGINE_CLASSES:
            self._register_class(info)

        # Stage 1: C# sources in the project
        source_classes: list[ScriptClass] = []
        for guid, path in index.iter_assets({".cs"}):
            classes = parse_script_file(index.absolute(path))
            for info in classes:
                self._register_class(info)
            source_classes.extend(classes)
            scripts.append(ScriptAsset(
                name=path.stem,
                path=path,
                guid=guid,
                file_id=MONO_SCRIPT_FILE_ID,
                script_class=main_class_for(path, classes),
            ))

        # Stage 2: classes compiled into assemblies
        for guid, path in index.iter_assets({".dll"}):
            for type_info in inspect_dll_cached(index.absolute(path)):
                if type_info.is_interface or type_info.name.startswith("<"):
                    continue
                info = _class_from_dll_type(type_info)
                self._register_class(info)
                scripts.append(ScriptAsset(
                    name=type_info.name,
                    path=path,
                    guid=guid,
                    file_id=compute_unity_file_id(type_info.namespace, type_info.name),
                    script_class=info,
                ))

        for info in source_classes:
            self._qualify_base(info)
        self._scripts = scripts

    def _qualify_base(self, info: ScriptClass) -> None:
        """Bind a source class's base name the way C# name lookup does.

        The enclosing namespaces are searched innermost first, so ``Player``
        inside ``B`` means ``B.Player`` even when ``A.Player`` was seen first.
        """
        if not info.base_name or not info.namespace:
            return
        parts = info.namespace.split(".")
        for i in range(len(parts), 0, -1):
            candidate = ".".join(parts[:i] + [info.base_name])
            if candidate in self._classes_by_full_name:
                info.base_name = candidate
                return


def _class_from_dll_type(type_info: DllTypeInfo) -> ScriptClass:
    # Attribute metadata is not read, so [SerializeField] on private fields is not visible
    return ScriptClass(
        name=type_info.name,
        namespace=type_info.namespace or None,
        base_name=type_info.base_full_name,
        is_abstract=type_info.is_abstract,
        fields=[
            ClassField(
                name=f.name,
                is_public=f.is_public,
                is_non_serialized=f.is_not_serialized,
                is_static=f.is_static or f.is_init_only,
            )
            for f in type_info.fields
        ],
    )
