"""Resolver session: scan, rank and fix broken script references.

``MissingScriptResolver`` ties the scanner, the class catalog, the ranker
and the rewriter together for one project.

Example:
    >>> resolver = MissingScriptResolver(UnityProject(Path("MyGame")))
    >>> result = resolver.scan_file(Path("MyGame/Assets/Scenes/Level.unity"))
    >>> for ref in result:
    ...     print(ref.owner, [c.name for c in ref.candidates[:3]])
    >>> resolver.apply(ref, ref.candidates[0].script)
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable

from unityrelink.catalog import ClassCatalog, get_catalog
from unityrelink.document import SerializedDocument
from unityrelink.errors import NotFoundError, ResolutionError
from unityrelink.host import ProjectHost
from unityrelink.ranker import rank_all, rank_candidates
from unityrelink.reflection import ScriptAsset
from unityrelink.rewriter import RelinkResult, apply_fix
from unityrelink.scanner import (
    BrokenReference,
    ResolutionPolicy,
    ScanResult,
    scan_document,
    scan_selection,
)
from unityrelink.settings import Settings


class MissingScriptResolver:
    """Finds broken script references and relinks them.

    Args:
        host: Project the documents belong to
        settings: Search limit and confirmation settings (default: defaults)
        policy: How broken links are detected
        addon_aware: Rank Odin-based classes for Odin-serialized components
    """

    def __init__(
        self,
        host: ProjectHost,
        settings: Settings | None = None,
        policy: ResolutionPolicy = ResolutionPolicy.LOCAL_ID,
        addon_aware: bool = True,
    ):
        self.host = host
        self.settings = settings or Settings()
        self.policy = policy
        self.addon_aware = addon_aware
        self.progress_callback: Callable[[int, int], None] | None = None

    @property
    def catalog(self) -> ClassCatalog:
        """The class catalog, built on first use."""
        return get_catalog(self.host, progress_callback=self.progress_callback)

    def rebuild_catalog(self) -> ClassCatalog:
        """Rebuild the catalog, e.g. after scripts were added or recompiled."""
        return get_catalog(self.host, rebuild=True, progress_callback=self.progress_callback)

    def scan_file(
        self,
        path: Path,
        object_ids: Iterable[int] | None = None,
        include_children: bool = True,
    ) -> ScanResult:
        """Scan a scene or prefab and rank candidates for every broken reference.

        Args:
            path: Document to scan
            object_ids: GameObjects to restrict the scan to (None: whole file)
            include_children: Include the descendants of ``object_ids``
        """
        if object_ids is not None:
            return self.scan_selection(((Path(path), i) for i in object_ids), include_children)

        result = scan_document(
            SerializedDocument.load(path),
            self.host,
            policy=self.policy,
            limit=self.settings.search_limit,
        )
        self._rank(result)
        return result

    def scan_selection(
        self,
        selection: Iterable[tuple[Path, int]],
        include_children: bool = True,
    ) -> ScanResult:
        """Scan the files behind a selection of (path, GameObject fileID) pairs."""
        result = scan_selection(
            self.host,
            selection,
            include_children=include_children,
            policy=self.policy,
            limit=self.settings.search_limit,
        )
        self._rank(result)
        return result

    def find_scripts(self, name: str) -> list[ScriptAsset]:
        """Find scripts by file name, class name or full class name.

        Unlike candidates, this covers every script the host knows, so any
        class can be assigned by hand.
        """
        found = []
        for script in self.host.iter_scripts():
            names = {script.name, script.display_name}
            if script.script_class is not None:
                names.add(script.script_class.name)
            if name in names:
                found.append(script)
        return found

    def find_reference(self, path: Path, component_id: int) -> BrokenReference:
        """Rescan a document for one broken component, ignoring the search limit.

        Raises:
            NotFoundError: If the component is not (or no longer) broken
        """
        document = SerializedDocument.load(path)
        for reference in scan_document(document, self.host, policy=self.policy):
            if reference.component_id == component_id:
                reference.candidates = rank_candidates(reference, self.catalog, self.addon_aware)
                return reference
        raise NotFoundError(
            f"No missing script on component {component_id} in {Path(path).name}",
            component_id=component_id,
            path=Path(path),
        )

    def script_by_name(self, name: str, reference: BrokenReference | None = None) -> ScriptAsset:
        """Pick the one script called ``name``.

        Candidates of ``reference`` are preferred, so a short class name that
        is ambiguous project-wide still works when only one candidate has it.

        Raises:
            ResolutionError: If no script or more than one script matches
        """
        if reference is not None:
            ranked = [
                c.script for c in reference.candidates
                if name in (c.script.name, c.name)
                or (c.script.script_class is not None and c.script.script_class.name == name)
            ]
            if len(ranked) == 1:
                return ranked[0]

        found = self.find_scripts(name)
        if not found:
            raise ResolutionError(f"No script named '{name}' in the project")
        if len(found) > 1:
            choices = ", ".join(sorted(s.display_name for s in found))
            raise ResolutionError(f"Script name '{name}' is ambiguous: {choices}")
        return found[0]

    def select(self, reference: BrokenReference, script: ScriptAsset | None) -> None:
        """Choose (or clear) the replacement script of a reference."""
        reference.new_script = script

    def apply(self, reference: BrokenReference, script: ScriptAsset | None = None) -> RelinkResult:
        """Rewrite the reference's m_Script line to point at ``script``.

        Raises:
            ResolutionError: If no script was chosen or it has no identity
            NotFoundError: If the component changed since it was scanned
        """
        return apply_fix(reference, script, self.host)

    def _rank(self, result: ScanResult) -> None:
        references = [ref for ref in result if ref.field_names or ref.addon_serialized]
        if references:
            rank_all(references, self.catalog, addon_aware=self.addon_aware)
