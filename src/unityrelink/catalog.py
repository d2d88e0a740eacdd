"""Catalog of attachable script classes and their serialized field names.

The catalog is what broken components are matched against. It is built
once per process and reused until explicitly invalidated, because building
it means parsing every script and assembly in the project.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Iterator

from unityrelink.host import ProjectHost
from unityrelink.reflection import ScriptAsset, ScriptClass

# Base type every attachable script derives from
COMPONENT_BASE_TYPE = "UnityEngine.MonoBehaviour"

# Odin Serializer base class; absent unless the add-on is installed
ODIN_BASE_TYPE = "Sirenix.OdinInspector.SerializedMonoBehaviour"


@dataclass(eq=False)
class CatalogEntry:
    """One attachable class with its serializable field names."""

    script: ScriptAsset
    field_names: tuple[str, ...] = ()
    is_addon: bool = False
    _field_set: frozenset[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._field_set = frozenset(self.field_names)

    def has_field(self, name: str) -> bool:
        return name in self._field_set

    @property
    def name(self) -> str:
        return self.script.display_name


@dataclass
class ClassCatalog:
    """All catalog entries, in discovery order."""

    entries: list[CatalogEntry] = field(default_factory=list)
    addon_base: str | None = None

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def find(self, name: str) -> list[CatalogEntry]:
        """Find entries by class name, full class name or script file name."""
        return [
            entry
            for entry in self.entries
            if name in (entry.script.name, entry.name)
            or (entry.script.script_class is not None and entry.script.script_class.name == name)
        ]

    def addon_entries(self) -> list[CatalogEntry]:
        return [entry for entry in self.entries if entry.is_addon]


def inheritance_chain(host: ProjectHost, script_class: ScriptClass) -> list[ScriptClass] | None:
    """Walk from a class up to, but not including, MonoBehaviour.

    Returns:
        The classes from ``script_class`` upward, or None if the chain never
        reaches MonoBehaviour (not a component, or a base that cannot be found)
    """
    chain: list[ScriptClass] = []
    seen: set[str] = set()
    current: ScriptClass | None = script_class

    while current is not None:
        if current.full_name == COMPONENT_BASE_TYPE:
            return chain or None
        if current.full_name in seen:
            return None
        seen.add(current.full_name)
        chain.append(current)
        current = host.find_class(current.base_name) if current.base_name else None

    return None


def serializable_field_names(chain: list[ScriptClass]) -> tuple[str, ...]:
    """Collect serialized field names over an inheritance chain, deduplicated by name."""
    names: list[str] = []
    seen: set[str] = set()
    for script_class in chain:
        for class_field in script_class.fields:
            if class_field.is_serialized and class_field.name not in seen:
                seen.add(class_field.name)
                names.append(class_field.name)
    return tuple(names)


def build_catalog(
    host: ProjectHost,
    progress_callback: Callable[[int, int], None] | None = None,
) -> ClassCatalog:
    """Build the catalog of concrete MonoBehaviour classes known to the host.

    Scripts whose class cannot be resolved, abstract classes and classes
    that are not components are skipped.

    Args:
        host: Host to enumerate scripts from
        progress_callback: Optional callback for progress (current, total)

    Returns:
        A new ClassCatalog
    """
    addon_class = host.find_class(ODIN_BASE_TYPE)
    catalog = ClassCatalog(addon_base=addon_class.full_name if addon_class else None)

    scripts = list(host.iter_scripts())
    total = len(scripts)
    seen: set[object] = set()

    for i, script in enumerate(scripts):
        if progress_callback:
            progress_callback(i + 1, total)

        # The same script may be reported by more than one source
        key = (script.file_id, script.guid) if script.guid else id(script)
        if key in seen:
            continue
        seen.add(key)

        script_class = script.script_class
        if script_class is None or script_class.is_abstract:
            continue

        chain = inheritance_chain(host, script_class)
        if chain is None:
            continue

        catalog.entries.append(
            CatalogEntry(
                script=script,
                field_names=serializable_field_names(chain),
                is_addon=catalog.addon_base is not None
                and any(c.full_name == catalog.addon_base for c in chain[1:]),
            )
        )

    return catalog


_catalog: ClassCatalog | None = None
_catalog_key: object = None
_catalog_lock = Lock()


def get_catalog(
    host: ProjectHost,
    rebuild: bool = False,
    progress_callback: Callable[[int, int], None] | None = None,
) -> ClassCatalog:
    """Get the process-wide catalog, building it on first use.

    A catalog built for a different project is replaced.

    Args:
        host: Host to build from
        rebuild: Force a rebuild, e.g. after scripts were recompiled
        progress_callback: Optional callback for progress (current, total)
    """
    global _catalog, _catalog_key
    with _catalog_lock:
        if rebuild or _catalog is None or _catalog_key != host.cache_key:
            _catalog = build_catalog(host, progress_callback)
            _catalog_key = host.cache_key
        return _catalog


def is_catalog_built() -> bool:
    return _catalog is not None


def invalidate_catalog() -> None:
    """Drop the cached catalog; the next get_catalog() rebuilds it."""
    global _catalog, _catalog_key
    with _catalog_lock:
        _catalog = None
        _catalog_key = None
