"""Tests for the broken-reference scanner."""

from pathlib import Path

import pytest

from unityrelink.document import SerializedDocument
from unityrelink.errors import DocumentIOError, TruncatedScan
from unityrelink.scanner import (
    IGNORED_FIELDS,
    ODIN_MARKER_FIELDS,
    ResolutionPolicy,
    ScriptLink,
    extract_fields,
    is_link_broken,
    parse_component_blocks,
    scan_document,
    scan_selection,
)

from conftest import HEALTH_GUID, MISSING_GUID, ODIN_MISSING_GUID, SCENE


@pytest.fixture
def host(host):
    """Host that knows Health, so only two scene components are broken."""
    host.add_script("Health", ["hitPoints"], guid=HEALTH_GUID)
    return host


def _component(component_id, owner_id, guid, data_lines, file_id=11500000):
    lines = [
        f"--- !u!114 &{component_id}",
        "MonoBehaviour:",
        "  m_ObjectHideFlags: 0",
        f"  m_GameObject: {{fileID: {owner_id}}}",
        "  m_Enabled: 1",
        f"  m_Script: {{fileID: {file_id}, guid: {guid}, type: 3}}",
    ]
    return "\n".join(lines + list(data_lines)) + "\n"


class TestComponentBlocks:
    """Test reading component blocks."""

    def test_parse_component_blocks(self):
        """Test owner, script link and data start of a block."""
        doc = SerializedDocument.parse(SCENE)
        blocks = {b.file_id: b for b in parse_component_blocks(doc)}

        assert set(blocks) == {114000, 114100, 114200}
        block = blocks[114000]
        assert block.owner_id == 42
        assert block.script == ScriptLink(11500000, MISSING_GUID)
        assert doc.lines[block.data_start - 1].strip().startswith("m_Script:")

    def test_block_without_script(self):
        """Test that a block with no m_Script line has no link."""
        doc = SerializedDocument.parse(
            "--- !u!114 &5\nMonoBehaviour:\n  m_GameObject: {fileID: 1}\n  a: 1\n"
        )
        (block,) = parse_component_blocks(doc)

        assert block.owner_id == 1
        assert block.script is None
        assert block.data_start == -1

    def test_negative_script_file_id(self):
        """Test DLL scripts whose fileID is negative."""
        doc = SerializedDocument.parse(_component(7, 1, MISSING_GUID, [], file_id=-1442786310))
        (block,) = parse_component_blocks(doc)

        assert block.script.file_id == -1442786310


class TestBrokenLinks:
    """Test the resolution policies."""

    def test_unknown_guid_is_broken(self, host):
        assert is_link_broken(host, ScriptLink(11500000, MISSING_GUID))
        assert is_link_broken(host, ScriptLink(11500000, MISSING_GUID), ResolutionPolicy.GUID_ONLY)

    def test_known_script_is_not_broken(self, host):
        assert not is_link_broken(host, ScriptLink(11500000, HEALTH_GUID))

    def test_missing_local_id(self, host):
        """Test a file that exists but no longer holds the class."""
        link = ScriptLink(987654, HEALTH_GUID)

        assert is_link_broken(host, link, ResolutionPolicy.LOCAL_ID)
        assert not is_link_broken(host, link, ResolutionPolicy.GUID_ONLY)


class TestFieldExtraction:
    """Test recovering serialized field names."""

    def test_ignored_fields_dropped(self):
        doc = SerializedDocument.parse(SCENE)
        block = next(b for b in parse_component_blocks(doc) if b.file_id == 114000)
        names, addon, preview = extract_fields(doc, block)

        assert names == ["speed", "target"]
        assert not addon
        assert not IGNORED_FIELDS & set(names)
        assert preview.splitlines()[0] == "m_Name:"
        assert "speed: 5" in preview

    def test_odin_markers_set_flag(self):
        """Test that Odin marker names set the flag and are not fields."""
        doc = SerializedDocument.parse(SCENE)
        block = next(b for b in parse_component_blocks(doc) if b.file_id == 114100)
        names, addon, _ = extract_fields(doc, block)

        assert addon
        assert names == []
        assert not ODIN_MARKER_FIELDS & set(names)

    def test_nested_and_duplicate_names(self):
        """Test that nested names are found and duplicates are kept."""
        doc = SerializedDocument.parse(_component(7, 1, MISSING_GUID, [
            "  stats:",
            "    value: 1",
            "  other:",
            "    value: 2",
            "  items:",
            "  - 1",
            "  - 2",
        ]))
        (block,) = parse_component_blocks(doc)
        names, _, _ = extract_fields(doc, block)

        assert names == ["stats", "value", "other", "value", "items"]

    def test_unindented_and_blank_lines_skipped(self):
        """Test that only lines indented by two spaces are data."""
        doc = SerializedDocument.parse(_component(7, 1, MISSING_GUID, [
            "  speed: 1",
            "",
            " odd: 2",
            "stray: 3",
            "  target: {fileID: 0}",
        ]))
        (block,) = parse_component_blocks(doc)
        names, _, preview = extract_fields(doc, block)

        assert names == ["speed", "target"]
        assert preview == "speed: 1\ntarget: {fileID: 0}"

    def test_data_ends_at_next_header(self):
        content = _component(7, 1, MISSING_GUID, ["  first: 1"]) + _component(
            8, 1, MISSING_GUID, ["  second: 2"]
        )
        doc = SerializedDocument.parse(content)
        first, second = parse_component_blocks(doc)

        assert extract_fields(doc, first)[0] == ["first"]
        assert extract_fields(doc, second)[0] == ["second"]


class TestScanDocument:
    """Test scanning a document for broken references."""

    def test_scan_finds_missing_scripts(self, host):
        """Test the broken MonoBehaviour on Player."""
        result = scan_document(SerializedDocument.parse(SCENE), host)

        assert [r.component_id for r in result] == [114000, 114100]
        ref = result.references[0]
        assert ref.owner.file_id == 42
        assert ref.owner.name == "Player"
        assert ref.broken_guid == MISSING_GUID
        assert ref.field_names == ["speed", "target"]
        assert ref.new_script is None
        assert not result.truncated

    def test_scan_odin_reference(self, host):
        result = scan_document(SerializedDocument.parse(SCENE), host)
        ref = next(r for r in result if r.component_id == 114100)

        assert ref.broken_guid == ODIN_MISSING_GUID
        assert ref.addon_serialized
        assert ref.field_names == []

    def test_owner_filter(self, host):
        """Test that only components on the given owners are returned."""
        doc = SerializedDocument.parse(SCENE)

        result = scan_document(doc, host, owner_ids={52})
        assert [r.owner.file_id for r in result] == [52]

        result = scan_document(doc, host, owner_ids=set())
        assert len(result) == 0

    def test_limit_truncates(self, host):
        """Test that the limit stops the scan and emits TruncatedScan."""
        doc = SerializedDocument.parse(SCENE)

        with pytest.warns(TruncatedScan):
            result = scan_document(doc, host, limit=1)

        assert len(result) == 1
        assert result.truncated
        assert result.references[0].component_id == 114000

    def test_limit_not_reached(self, host, recwarn):
        """Test that exactly as many references as the limit is not truncation."""
        result = scan_document(SerializedDocument.parse(SCENE), host, limit=2)

        assert len(result) == 2
        assert not result.truncated
        assert not [w for w in recwarn if issubclass(w.category, TruncatedScan)]

    def test_zero_limit_means_unlimited(self, host):
        result = scan_document(SerializedDocument.parse(SCENE), host, limit=0)

        assert len(result) == 2

    def test_to_dict(self, host):
        result = scan_document(SerializedDocument.parse(SCENE), host)
        data = result.references[0].to_dict()

        assert data["componentFileID"] == 114000
        assert data["owner"] == {"fileID": 42, "name": "Player"}
        assert data["brokenScript"]["guid"] == MISSING_GUID
        assert data["fields"] == ["speed", "target"]
        assert data["candidates"] == []


class TestScanSelection:
    """Test scanning the files behind a selection."""

    def test_selection_filters_by_owner(self, host, scene_file):
        """Test that only the selected GameObject is scanned."""
        result = scan_selection(host, [(scene_file, 42)], include_children=False)
        assert [r.owner.file_id for r in result] == [42]

    def test_selection_without_children(self, host, scene_file):
        result = scan_selection(host, [(scene_file, 42), (scene_file, 52)], include_children=False)

        assert [r.component_id for r in result] == [114000, 114100]
        assert result.files_scanned == 1
        assert all(r.file_path == scene_file for r in result)

    def test_limit_across_files(self, host, tmp_path):
        """Test that the limit counts references over every file."""
        first = tmp_path / "A.prefab"
        second = tmp_path / "B.prefab"
        first.write_text(_component(1, 10, MISSING_GUID, ["  a: 1"]), encoding="utf-8")
        second.write_text(_component(2, 20, MISSING_GUID, ["  b: 1"]), encoding="utf-8")

        with pytest.warns(TruncatedScan):
            result = scan_selection(host, [(first, 10), (second, 20)], limit=1)

        assert [r.file_path for r in result] == [first]
        assert result.truncated

    def test_missing_file(self, host, tmp_path):
        with pytest.raises(DocumentIOError):
            scan_selection(host, [(tmp_path / "Gone.unity", 1)])

    def test_paths_are_grouped(self, host, scene_file):
        """Test that the same file given as str and Path is read once."""
        result = scan_selection(host, [(str(scene_file), 42), (Path(scene_file), 52)],
                                include_children=False)

        assert result.files_scanned == 1
        assert len(result) == 2
