"""Unity Missing Script resolver.

Finds MonoBehaviour components whose script link is broken in Unity scenes
and prefabs, ranks the project's classes by how well they match the data
still serialized on the component, and relinks the component in place.
"""

from importlib.metadata import version

__version__ = version("unityrelink")

from unityrelink.errors import (
    DocumentIOError,
    NotFoundError,
    RelinkError,
    ResolutionError,
    TruncatedScan,
)
from unityrelink.document import BlockSpan, SerializedDocument
from unityrelink.reflection import ClassField, ScriptAsset, ScriptClass
from unityrelink.host import ProjectHost, UnityProject
from unityrelink.catalog import (
    COMPONENT_BASE_TYPE,
    ODIN_BASE_TYPE,
    CatalogEntry,
    ClassCatalog,
    build_catalog,
    get_catalog,
    invalidate_catalog,
)
from unityrelink.scanner import (
    IGNORED_FIELDS,
    ODIN_MARKER_FIELDS,
    BrokenReference,
    ComponentBlock,
    ResolutionPolicy,
    ScanResult,
    scan_document,
    scan_selection,
)
from unityrelink.ranker import (
    MAX_DISPLAYED_CANDIDATES,
    ScriptCandidate,
    rank_all,
    rank_candidates,
)
from unityrelink.rewriter import RelinkResult, apply_fix
from unityrelink.resolver import MissingScriptResolver
from unityrelink.settings import Settings

__all__ = [
    # Errors
    "RelinkError",
    "DocumentIOError",
    "ResolutionError",
    "NotFoundError",
    "TruncatedScan",
    # Documents
    "BlockSpan",
    "SerializedDocument",
    # Host
    "ClassField",
    "ScriptAsset",
    "ScriptClass",
    "ProjectHost",
    "UnityProject",
    # Catalog
    "COMPONENT_BASE_TYPE",
    "ODIN_BASE_TYPE",
    "CatalogEntry",
    "ClassCatalog",
    "build_catalog",
    "get_catalog",
    "invalidate_catalog",
    # Scanning
    "IGNORED_FIELDS",
    "ODIN_MARKER_FIELDS",
    "BrokenReference",
    "ComponentBlock",
    "ResolutionPolicy",
    "ScanResult",
    "scan_document",
    "scan_selection",
    # Ranking
    "MAX_DISPLAYED_CANDIDATES",
    "ScriptCandidate",
    "rank_all",
    "rank_candidates",
    # Rewriting
    "RelinkResult",
    "apply_fix",
    # Session
    "MissingScriptResolver",
    "Settings",
]
