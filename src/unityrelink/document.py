"""Line index over Unity YAML documents.

Scene and prefab files are read as plain lines. Object blocks are located by
their ``--- !u!{ClassID} &{fileID}`` headers without parsing the YAML, so a
rewrite can replace a single line and leave every other byte untouched.

Example:
    >>> doc = SerializedDocument.load("Assets/Scenes/Main.unity")
    >>> span = doc.find_block(114523, class_id=114)
    >>> doc.lines[span.start]
    '--- !u!114 &114523'
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterator

from unityrelink.errors import DocumentIOError

# Pattern to match Unity document headers: --- !u!{ClassID} &{fileID}
# fileIDs are signed 64-bit values and may be negative
DOCUMENT_HEADER_PATTERN = re.compile(r"^--- !u!(\d+) &(-?\d+)( stripped)?\s*$")

# Any document separator closes the current block
BLOCK_BOUNDARY_PREFIX = "--- !"

_LINE_BREAK_PATTERN = re.compile(r"(\r\n|\n|\r)")

UNITY_DOCUMENT_EXTENSIONS = {".unity", ".prefab", ".asset"}


@dataclass(frozen=True)
class BlockSpan:
    """Line range of one object block.

    ``start`` is the header line, ``end`` is exclusive.
    """

    class_id: int
    file_id: int
    start: int
    end: int
    stripped: bool = False

    @property
    def body(self) -> range:
        """Line indices after the header."""
        return range(self.start + 1, self.end)


@dataclass(frozen=True)
class SerializedDocument:
    """Immutable snapshot of a document's lines.

    Line endings are kept per line so that saving reproduces untouched lines
    byte for byte, whatever newline convention the file uses.
    """

    lines: tuple[str, ...] = ()
    endings: tuple[str, ...] = ()
    path: Path | None = None

    def __len__(self) -> int:
        return len(self.lines)

    def __iter__(self) -> Iterator[str]:
        return iter(self.lines)

    def __getitem__(self, index: int) -> str:
        return self.lines[index]

    @classmethod
    def load(cls, path: str | Path) -> SerializedDocument:
        """Read a document from disk.

        Args:
            path: Path to the .unity/.prefab/.asset file

        Returns:
            A fresh SerializedDocument

        Raises:
            DocumentIOError: If the file is missing or cannot be decoded
        """
        path = Path(path)
        try:
            content = path.read_bytes().decode("utf-8")
        except FileNotFoundError as e:
            raise DocumentIOError(f"Document not found: {path}", path) from e
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentIOError(f"Cannot read {path}: {e}", path) from e
        return cls.parse(content, path)

    @classmethod
    def parse(cls, content: str, path: Path | None = None) -> SerializedDocument:
        """Split document content into lines, remembering each line ending."""
        if not content:
            return cls(path=path)

        parts = _LINE_BREAK_PATTERN.split(content)
        lines = parts[0::2]
        endings = parts[1::2] + [""]

        # A trailing newline leaves an empty remainder that is not a line
        if lines[-1] == "":
            lines.pop()
            endings.pop()

        return cls(lines=tuple(lines), endings=tuple(endings), path=path)

    def dump(self) -> str:
        """Reassemble the document content."""
        return "".join(line + ending for line, ending in zip(self.lines, self.endings))

    def save(self, path: str | Path | None = None) -> Path:
        """Write the whole document back to disk.

        Args:
            path: Target path (default: the path the document was loaded from)

        Returns:
            The path written to
        """
        target = Path(path) if path is not None else self.path
        if target is None:
            raise ValueError("Document has no path to save to")
        try:
            target.write_bytes(self.dump().encode("utf-8"))
        except OSError as e:
            raise DocumentIOError(f"Cannot write {target}: {e}", target) from e
        return target

    def with_line(self, index: int, text: str) -> SerializedDocument:
        """Return a copy with one line replaced, keeping its line ending."""
        if not 0 <= index < len(self.lines):
            raise IndexError(f"Line {index} out of range (0..{len(self.lines) - 1})")
        if _LINE_BREAK_PATTERN.search(text):
            raise ValueError("Replacement text must be a single line")
        lines = list(self.lines)
        lines[index] = text
        return replace(self, lines=tuple(lines))

    def iter_blocks(self, class_id: int | None = None) -> Iterator[BlockSpan]:
        """Yield the span of every object block, optionally filtered by ClassID."""
        boundaries = [
            i for i, line in enumerate(self.lines) if line.startswith(BLOCK_BOUNDARY_PREFIX)
        ]
        boundaries.append(len(self.lines))

        for start, end in zip(boundaries, boundaries[1:]):
            match = DOCUMENT_HEADER_PATTERN.match(self.lines[start])
            if not match:
                continue
            block_class_id = int(match.group(1))
            if class_id is not None and block_class_id != class_id:
                continue
            yield BlockSpan(
                class_id=block_class_id,
                file_id=int(match.group(2)),
                start=start,
                end=end,
                stripped=match.group(3) is not None,
            )

    def find_block(self, file_id: int, class_id: int | None = None) -> BlockSpan | None:
        """Find the block whose header carries ``file_id``."""
        for span in self.iter_blocks(class_id):
            if span.file_id == file_id:
                return span
        return None

    def block_lines(self, span: BlockSpan) -> tuple[str, ...]:
        """Get the lines of a block, header included."""
        return self.lines[span.start:span.end]
