"""Tests for CLI interface."""

import json

import pytest
from click.testing import CliRunner

from unityrelink.cli import main
from unityrelink.settings import ENV_SEARCH_LIMIT, ENV_SKIP_CONFIRMATION, Settings

from conftest import MISSING_GUID, MOVER_GUID, meta_content


@pytest.fixture
def runner(monkeypatch):
    """Create a CLI test runner."""
    monkeypatch.delenv(ENV_SEARCH_LIMIT, raising=False)
    monkeypatch.delenv(ENV_SKIP_CONFIRMATION, raising=False)
    return CliRunner()


@pytest.fixture
def scene(unity_project):
    return unity_project / "Assets" / "Scenes" / "Level.unity"


class TestScanCommand:
    """Tests for the scan command."""

    def test_scan_text(self, runner, scene):
        result = runner.invoke(main, ["scan", str(scene)])

        assert result.exit_code == 0
        assert "2 missing script(s)" in result.output
        assert "Missing script on 'Player' (fileID 42), component 114000" in result.output
        assert "Game.Mover  2/2 matched fields" in result.output
        assert "Odin Serializer fields detected" in result.output
        assert "No matching scripts found" in result.output

    def test_scan_json(self, runner, scene):
        result = runner.invoke(main, ["scan", str(scene), "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["truncated"] is False
        assert [m["componentFileID"] for m in data["missing"]] == [114000, 114100]
        assert data["missing"][0]["candidates"][0]["guid"] == MOVER_GUID

    def test_scan_object_with_children(self, runner, scene):
        result = runner.invoke(main, ["scan", str(scene), "--object", "42", "--format", "json"])

        assert result.exit_code == 0
        owners = [m["owner"]["fileID"] for m in json.loads(result.output)["missing"]]
        assert owners == [42, 52]

    def test_scan_object_no_children(self, runner, scene):
        result = runner.invoke(
            main, ["scan", str(scene), "-o", "42", "--no-children", "--format", "json"]
        )

        assert result.exit_code == 0
        assert len(json.loads(result.output)["missing"]) == 1

    def test_scan_limit(self, runner, scene):
        result = runner.invoke(main, ["scan", str(scene), "--limit", "1", "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["truncated"] is True
        assert len(data["missing"]) == 1

    def test_scan_show_data(self, runner, scene):
        result = runner.invoke(main, ["scan", str(scene), "--show-data"])

        assert result.exit_code == 0
        assert "speed: 5" in result.output

    def test_scan_clean_file(self, runner, unity_project):
        clean = unity_project / "Assets" / "Scenes" / "Empty.prefab"
        clean.write_text("%YAML 1.1\n", encoding="utf-8")

        result = runner.invoke(main, ["scan", str(clean)])

        assert result.exit_code == 0
        assert "no missing scripts" in result.output

    def test_scan_outside_project(self, runner, tmp_path):
        loose = tmp_path / "Loose.prefab"
        loose.write_text("%YAML 1.1\n", encoding="utf-8")

        result = runner.invoke(main, ["scan", str(loose)])

        assert result.exit_code == 1
        assert "not inside a Unity project" in result.output


class TestFixCommand:
    """Tests for the fix command."""

    def test_fix_named_script(self, runner, scene):
        result = runner.invoke(
            main, ["fix", str(scene), "-c", "114000", "--script", "Mover", "--yes"]
        )

        assert result.exit_code == 0
        assert "Fixed" in result.output
        content = scene.read_text(encoding="utf-8")
        assert MISSING_GUID not in content
        assert f"m_Script: {{fileID: 11500000, guid: {MOVER_GUID}, type: 3}}" in content

    def test_fix_best(self, runner, scene):
        result = runner.invoke(main, ["fix", str(scene), "-c", "114000", "--best", "-y"])

        assert result.exit_code == 0
        assert MOVER_GUID in scene.read_text(encoding="utf-8")

    def test_fix_best_without_candidates(self, runner, scene):
        before = scene.read_bytes()

        result = runner.invoke(main, ["fix", str(scene), "-c", "114100", "--best", "-y"])

        assert result.exit_code == 1
        assert "No candidate scripts" in result.output
        assert scene.read_bytes() == before

    def test_fix_asks_for_confirmation(self, runner, scene):
        before = scene.read_bytes()

        result = runner.invoke(main, ["fix", str(scene), "-c", "114000", "-s", "Mover"], input="n\n")

        assert result.exit_code == 0
        assert "back up your work" in result.output
        assert "Aborted" in result.output
        assert scene.read_bytes() == before

    def test_fix_confirmed(self, runner, scene):
        result = runner.invoke(main, ["fix", str(scene), "-c", "114000", "-s", "Mover"], input="y\n")

        assert result.exit_code == 0
        assert MOVER_GUID in scene.read_text(encoding="utf-8")

    def test_skip_confirmation_setting(self, runner, unity_project, scene):
        Settings(skip_confirmation=True).save(unity_project)

        result = runner.invoke(main, ["fix", str(scene), "-c", "114000", "-s", "Mover"])

        assert result.exit_code == 0
        assert "Continue?" not in result.output
        assert MOVER_GUID in scene.read_text(encoding="utf-8")

    def test_fix_needs_script_or_best(self, runner, scene):
        result = runner.invoke(main, ["fix", str(scene), "-c", "114000"])

        assert result.exit_code == 1
        assert "--script or --best" in result.output

    def test_fix_unknown_script(self, runner, scene):
        result = runner.invoke(main, ["fix", str(scene), "-c", "114000", "-s", "Nope", "-y"])

        assert result.exit_code == 1
        assert "No script named 'Nope'" in result.output

    def test_fix_component_not_broken(self, runner, scene):
        result = runner.invoke(main, ["fix", str(scene), "-c", "114200", "-s", "Health", "-y"])

        assert result.exit_code == 1
        assert "114200" in result.output


class TestCatalogCommand:
    def test_catalog_text(self, runner, unity_project):
        result = runner.invoke(main, ["catalog", "--project", str(unity_project)])

        assert result.exit_code == 0
        assert "Game.Mover" in result.output
        assert "speed, target" in result.output
        assert "2 class(es)" in result.output

    def test_catalog_json(self, runner, unity_project):
        result = runner.invoke(
            main, ["catalog", "--project", str(unity_project), "--format", "json", "--rebuild"]
        )

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["odinInstalled"] is False
        assert {c["name"] for c in data["classes"]} == {"Game.Mover", "Health"}

    def test_catalog_odin_only(self, runner, unity_project):
        result = runner.invoke(main, ["catalog", "--project", str(unity_project), "--odin-only"])

        assert result.exit_code == 0
        assert "0 class(es)" in result.output


class TestGuidCommand:
    def test_guid_of_script(self, runner, unity_project):
        script = unity_project / "Assets" / "Scripts" / "Mover.cs"

        result = runner.invoke(main, ["guid", str(script)])

        assert result.exit_code == 0
        assert f"guid: {MOVER_GUID}" in result.output
        assert "fileID: 11500000  Game.Mover" in result.output

    def test_guid_without_meta(self, runner, tmp_path):
        asset = tmp_path / "Loose.cs"
        asset.write_text("public class Loose { }", encoding="utf-8")

        result = runner.invoke(main, ["guid", str(asset)])

        assert result.exit_code == 1
        assert "No GUID" in result.output

    def test_unknown_dll_file_id(self, runner, tmp_path):
        dll = tmp_path / "Native.dll"
        dll.write_bytes(b"\x00" * 64)
        (tmp_path / "Native.dll.meta").write_text(meta_content("7" * 32), encoding="utf-8")

        result = runner.invoke(main, ["guid", str(dll), "--file-id", "123"])

        assert result.exit_code == 1
        assert "fileID 123" in result.output


class TestConfigCommand:
    def test_show_defaults(self, runner, unity_project):
        result = runner.invoke(main, ["config", "--project", str(unity_project)])

        assert result.exit_code == 0
        assert "search_limit: 10" in result.output
        assert "skip_confirmation: false" in result.output

    def test_change_settings(self, runner, unity_project):
        result = runner.invoke(
            main,
            ["config", "--project", str(unity_project), "--search-limit", "0", "--skip-confirmation"],
        )

        assert result.exit_code == 0
        assert "Saved" in result.output
        assert Settings.load(unity_project) == Settings(search_limit=0, skip_confirmation=True)

    def test_broken_settings_file(self, runner, unity_project, scene):
        """Test that a settings file with a null limit still works."""
        path = unity_project / "ProjectSettings" / "UnityRelinkSettings.json"
        path.write_text('{"search_limit": null}', encoding="utf-8")

        result = runner.invoke(main, ["config", "--project", str(unity_project)])
        assert result.exit_code == 0
        assert "search_limit: 10" in result.output

        result = runner.invoke(main, ["scan", str(scene), "--format", "json"])
        assert result.exit_code == 0
        assert len(json.loads(result.output)["missing"]) == 2

    def test_negative_limit_rejected(self, runner, unity_project):
        result = runner.invoke(main, ["config", "--project", str(unity_project), "--search-limit", "-1"])

        assert result.exit_code != 0


class TestVersion:
    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert "unityrelink" in result.output
