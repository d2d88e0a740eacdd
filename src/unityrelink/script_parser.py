"""C# Script Parser for Unity class and field extraction.

Parses C# sources to recover the classes they declare, their base class and
their instance fields with the attributes that decide Unity serialization.
These are simplified patterns that work for the common cases found in game
scripts; they are not a C# grammar.
"""

from __future__ import annotations

import re
from pathlib import Path

from unityrelink.reflection import ClassField, ScriptClass

# Local identifier of the MonoScript object inside a .cs asset
MONO_SCRIPT_FILE_ID = 11500000

# Match class declaration (modifiers, name, generic parameters, bases)
CLASS_PATTERN = re.compile(
    r"(?P<modifiers>(?:(?:public|internal|private|protected|abstract|sealed|static|partial|unsafe)\s+)*)"
    r"\bclass\s+(?P<name>\w+)"
    r"(?:\s*<[^>{;]*>)?"
    r"(?:\s*:\s*(?P<bases>[^{;]+?))?"
    r"\s*(?:where\s+[^{;]+)?\{",
)

# Match block-scoped and file-scoped namespace declarations
NAMESPACE_PATTERN = re.compile(r"\bnamespace\s+(?P<name>[\w.]+)\s*(?P<open>[{;])")

# Match field declarations with attributes
# Declarations start a statement; with method bodies blanked out this keeps
# locals and parameters out. No access modifier means private.
FIELD_PATTERN = re.compile(
    r"(?:(?<=[;{}])|\A)\s*"  # Statement start
    r"(?P<attrs>(?:\[[^\[\]]*\]\s*)*)"  # Attributes
    r"(?P<access>(?:(?:public|private|protected|internal)\s+)*)"  # Access modifier(s)
    r"(?P<modifiers>(?:(?:static|const|readonly|volatile|new)\s+)*)"  # Other modifiers
    r"(?P<type>[\w.][\w.<>,\[\]\s?]*?)\s+"  # Type (including generics, arrays, nullable)
    r"(?P<declarators>\w+\s*(?:(?:=(?!>)|,)[^;]*)?)\s*;",  # Names, initializers (not =>)
)

DECLARATOR_NAME_PATTERN = re.compile(r"\s*(\w+)")

SERIALIZE_FIELD_ATTR = re.compile(r"\bSerializeField\b")
SERIALIZE_REFERENCE_ATTR = re.compile(r"\bSerializeReference\b")
NON_SERIALIZED_ATTR = re.compile(r"\b(?:System\.)?NonSerialized\b")

# Preprocessor lines, comments, verbatim strings, regular strings and char literals
LEXICAL_NOISE_PATTERN = re.compile(
    r"^[ \t]*#[^\n]*"
    r"|//[^\n]*"
    r"|/\*.*?\*/"
    r'|@"(?:""|[^"])*"'
    r'|\$?"(?:\\.|[^"\\\n])*"'
    r"|'(?:\\.|[^'\\\n])'",
    re.DOTALL | re.MULTILINE,
)


def parse_script(content: str) -> list[ScriptClass]:
    """Parse C# source and return every class it declares.

    Args:
        content: The C# script content

    Returns:
        List of ScriptClass in declaration order (empty if none found)
    """
    content = _remove_comments_and_literals(content)

    namespaces = _namespace_ranges(content)
    classes: list[ScriptClass] = []

    for class_match in CLASS_PATTERN.finditer(content):
        body_start = class_match.end()
        body_end = _find_closing_brace(content, body_start)
        if body_end is None:
            continue

        modifiers = class_match.group("modifiers") or ""
        bases = class_match.group("bases")

        info = ScriptClass(
            name=class_match.group("name"),
            namespace=_namespace_at(namespaces, class_match.start()),
            base_name=_first_base(bases) if bases else None,
            is_abstract="abstract" in modifiers.split() or "static" in modifiers.split(),
        )
        info.fields = _parse_fields(_top_level(content[body_start:body_end]))
        classes.append(info)

    return classes


def parse_script_file(path: Path) -> list[ScriptClass]:
    """Parse a C# script file.

    Returns:
        Declared classes, or an empty list if the file cannot be read
    """
    try:
        content = path.read_text(encoding="utf-8-sig")  # Handle BOM
    except (OSError, UnicodeDecodeError):
        return []
    return parse_script(content)


def main_class_for(path: Path, classes: list[ScriptClass]) -> ScriptClass | None:
    """Pick the class Unity binds to a script file.

    Unity only attaches a MonoBehaviour whose class name equals the file
    name; any other class in the file has no MonoScript of its own.
    """
    for info in classes:
        if info.name == path.stem:
            return info
    return None


def _parse_fields(class_body: str) -> list[ClassField]:
    fields: list[ClassField] = []
    for match in FIELD_PATTERN.finditer(class_body):
        attrs = match.group("attrs") or ""
        access = match.group("access").split()
        modifiers = (match.group("modifiers") or "").split()
        field_type = " ".join(match.group("type").split())

        # Events and readonly/const members are never serialized by Unity
        if field_type.startswith("event ") or "readonly" in modifiers:
            continue

        for name in _declarator_names(match.group("declarators")):
            fields.append(ClassField(
                name=name,
                field_type=field_type,
                is_public="public" in access,
                has_serialize_field=bool(
                    SERIALIZE_FIELD_ATTR.search(attrs) or SERIALIZE_REFERENCE_ATTR.search(attrs)
                ),
                is_non_serialized=bool(NON_SERIALIZED_ATTR.search(attrs)),
                is_static="static" in modifiers or "const" in modifiers,
            ))
    return fields


def _declarator_names(declarators: str) -> list[str]:
    """Get the names of ``a = 1, b, c = F(x, y)``, skipping initializers."""
    parts = []
    depth = 0
    current = []
    for char in declarators:
        if char in "(<[{":
            depth += 1
        elif char in ")>]}":
            depth = max(0, depth - 1)
        elif char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))

    names = []
    for part in parts:
        name = DECLARATOR_NAME_PATTERN.match(part)
        if name:
            names.append(name.group(1))
    return names


def _first_base(bases: str) -> str | None:
    """Get the first base type name, without generic arguments."""
    depth = 0
    first = []
    for char in bases:
        if char == "<":
            depth += 1
        elif char == ">":
            depth -= 1
        elif char == "," and depth == 0:
            break
        if depth == 0 and char not in "<>":
            first.append(char)
    name = "".join(first).strip()
    if name.startswith("global::"):
        name = name[len("global::"):]
    return name or None


def _top_level(body: str) -> str:
    """Blank out everything nested in braces inside a class body.

    Keeps member declarations at class level and hides method bodies,
    property accessors and nested types.
    """
    out = []
    depth = 0
    for char in body:
        if char == "{":
            depth += 1
            out.append(char if depth == 1 else " ")
        elif char == "}":
            out.append(char if depth == 1 else " ")
            depth -= 1
        else:
            out.append(char if depth == 0 or char == "\n" else " ")
    return "".join(out)


def _namespace_ranges(content: str) -> list[tuple[int, int, str]]:
    ranges = []
    for match in NAMESPACE_PATTERN.finditer(content):
        if match.group("open") == ";":
            ranges.append((match.end(), len(content), match.group("name")))
            continue
        end = _find_closing_brace(content, match.end())
        ranges.append((match.end(), end if end is not None else len(content), match.group("name")))
    return ranges


def _namespace_at(ranges: list[tuple[int, int, str]], pos: int) -> str | None:
    """Get the namespace enclosing ``pos``; nested blocks combine their names."""
    names = [name for start, end, name in sorted(ranges) if start <= pos < end]
    return ".".join(names) or None


def _remove_comments_and_literals(content: str) -> str:
    """Remove C# comments and directives, empty out string/char literals.

    Done in one pass so that ``//`` inside a string or a quote inside a
    comment cannot throw off the other.
    """
    def _replace(match: re.Match) -> str:
        token = match.group(0)
        if token.lstrip(" \t").startswith("#"):
            return ""
        if token.startswith("/"):
            return "\n" * token.count("\n")
        if token.startswith("'"):
            return "' '"
        return '""'

    return LEXICAL_NOISE_PATTERN.sub(_replace, content)


def _find_closing_brace(content: str, start_pos: int) -> int | None:
    """Find the position of the brace closing the block opened before start_pos.

    Returns:
        Index of the closing brace, or None if braces are unbalanced
    """
    depth = 1
    pos = start_pos

    while pos < len(content):
        char = content[pos]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return pos
        pos += 1

    return None
