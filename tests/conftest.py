"""Shared fixtures: an in-memory host and a small Unity project on disk."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from unityrelink.catalog import invalidate_catalog
from unityrelink.host import ENGINE_CLASSES, ProjectHost
from unityrelink.reflection import ClassField, ScriptAsset, ScriptClass

MISSING_GUID = "a" * 32
ODIN_MISSING_GUID = "b" * 32
MOVER_GUID = "c" * 32
HEALTH_GUID = "d" * 32

SCENE = """\
%YAML 1.1
%TAG !u! tag:unity3d.com,2011:
--- !u!1 &42
GameObject:
  m_ObjectHideFlags: 0
  m_Component:
  - component: {fileID: 43}
  - component: {fileID: 114000}
  m_Layer: 0
  m_Name: Player
--- !u!4 &43
Transform:
  m_ObjectHideFlags: 0
  m_GameObject: {fileID: 42}
  m_Children:
  - {fileID: 53}
  m_Father: {fileID: 0}
--- !u!114 &114000
MonoBehaviour:
  m_ObjectHideFlags: 0
  m_CorrespondingSourceObject: {fileID: 0}
  m_GameObject: {fileID: 42}
  m_Enabled: 1
  m_EditorHideFlags: 0
  m_Script: {fileID: 11500000, guid: aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa, type: 3}
  m_Name:
  m_EditorClassIdentifier:
  speed: 5
  target: {fileID: 0}
--- !u!1 &52
GameObject:
  m_ObjectHideFlags: 0
  m_Component:
  - component: {fileID: 53}
  - component: {fileID: 114100}
  m_Name: Child
--- !u!4 &53
Transform:
  m_ObjectHideFlags: 0
  m_GameObject: {fileID: 52}
  m_Children: []
  m_Father: {fileID: 43}
--- !u!114 &114100
MonoBehaviour:
  m_ObjectHideFlags: 0
  m_GameObject: {fileID: 52}
  m_Enabled: 1
  m_Script: {fileID: 11500000, guid: bbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb, type: 3}
  m_Name:
  m_EditorClassIdentifier:
  serializationData:
    SerializedFormat: 2
    SerializedBytes:
    ReferencedUnityObjects: []
    SerializedBytesString:
    Prefab: {fileID: 0}
    PrefabModificationsReferencedUnityObjects: []
    PrefabModifications: []
    SerializationNodes: []
--- !u!1 &62
GameObject:
  m_ObjectHideFlags: 0
  m_Component:
  - component: {fileID: 63}
  - component: {fileID: 114200}
  m_Name: Healthy
--- !u!4 &63
Transform:
  m_ObjectHideFlags: 0
  m_GameObject: {fileID: 62}
  m_Children: []
  m_Father: {fileID: 0}
--- !u!114 &114200
MonoBehaviour:
  m_ObjectHideFlags: 0
  m_GameObject: {fileID: 62}
  m_Enabled: 1
  m_Script: {fileID: 11500000, guid: dddddddddddddddddddddddddddddddd, type: 3}
  m_Name:
  m_EditorClassIdentifier:
  hitPoints: 100
"""

MOVER_CS = """\
using UnityEngine;

namespace Game
{
    public class Mover : MonoBehaviour
    {
        public float speed = 5f;
        [SerializeField] private Transform target;
        private int hidden;

        void Update()
        {
            transform.position += Vector3.forward * speed;
        }
    }
}
"""

HEALTH_CS = """\
using UnityEngine;

public class Health : MonoBehaviour
{
    public int hitPoints = 100;
}
"""


def meta_content(guid: str) -> str:
    return f"fileFormatVersion: 2\nguid: {guid}\nMonoImporter:\n  serializedVersion: 2\n"


def _mono(name, namespace=None, fields=(), base="UnityEngine.MonoBehaviour", **kwargs):
    return ScriptClass(
        name=name,
        namespace=namespace,
        base_name=base,
        fields=[ClassField(name=f, is_public=True) for f in fields],
        **kwargs,
    )


class FakeHost(ProjectHost):
    """In-memory host with scripts registered by the test."""

    def __init__(self):
        self.scripts: list[ScriptAsset] = []
        self.classes: dict[str, ScriptClass] = {}
        self.paths: dict[str, Path] = {}
        self.local_ids: dict[Path, set[int]] = {}
        self.reloaded: list[Path] = []
        for info in ENGINE_CLASSES:
            self.register_class(info)

    def register_class(self, info: ScriptClass) -> ScriptClass:
        self.classes[info.full_name] = info
        self.classes.setdefault(info.name, info)
        return info

    def add_script(
        self,
        name: str,
        fields=(),
        guid: str | None = None,
        namespace: str | None = None,
        base: str = "UnityEngine.MonoBehaviour",
        file_id: int = 11500000,
        **kwargs,
    ) -> ScriptAsset:
        info = self.register_class(_mono(name, namespace, fields, base, **kwargs))
        script = ScriptAsset(name=name, guid=guid, file_id=file_id, script_class=info)
        if guid is not None:
            path = Path(f"Assets/Scripts/{name}.cs")
            script.path = path
            self.paths[guid] = path
            self.local_ids.setdefault(path, set()).add(file_id)
        self.scripts.append(script)
        return script

    def iter_scripts(self) -> Iterator[ScriptAsset]:
        return iter(self.scripts)

    def find_class(self, name: str) -> ScriptClass | None:
        return self.classes.get(name)

    def guid_to_path(self, guid: str) -> Path | None:
        return self.paths.get(guid)

    def script_local_ids(self, path: Path) -> set[int]:
        return self.local_ids.get(path, set())

    def reload_asset(self, path: Path) -> None:
        self.reloaded.append(path)


@pytest.fixture(autouse=True)
def fresh_catalog():
    """Every test starts without a cached catalog."""
    invalidate_catalog()
    yield
    invalidate_catalog()


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def scene_file(tmp_path):
    path = tmp_path / "Level.unity"
    path.write_text(SCENE, encoding="utf-8", newline="\n")
    return path


@pytest.fixture
def unity_project(tmp_path):
    """A Unity project with two scripts and a scene with two missing ones."""
    root = tmp_path / "Project"
    scripts = root / "Assets" / "Scripts"
    scenes = root / "Assets" / "Scenes"
    scripts.mkdir(parents=True)
    scenes.mkdir(parents=True)
    (root / "ProjectSettings").mkdir()

    (scripts / "Mover.cs").write_text(MOVER_CS, encoding="utf-8")
    (scripts / "Mover.cs.meta").write_text(meta_content(MOVER_GUID), encoding="utf-8")
    (scripts / "Health.cs").write_text(HEALTH_CS, encoding="utf-8")
    (scripts / "Health.cs.meta").write_text(meta_content(HEALTH_GUID), encoding="utf-8")
    (scenes / "Level.unity").write_text(SCENE, encoding="utf-8", newline="\n")
    (scenes / "Level.unity.meta").write_text(meta_content("e" * 32), encoding="utf-8")
    return root
