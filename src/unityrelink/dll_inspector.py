"""DLL Inspector for Unity .NET assemblies.

Parses .NET DLL PE/CLI metadata to extract type definitions (names,
namespaces, base types and declared fields) and compute Unity fileIDs for
script references to classes shipped only as compiled libraries.

Unity stores DLL-based MonoBehaviour references as:
    m_Script: {fileID: <hash>, guid: <dll_meta_guid>, type: 3}

Where fileID = MD4("s\\0\\0\\0" + namespace + className) as little-endian int32.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from pathlib import Path

# TypeDef flags (ECMA-335 II.23.1.15)
TYPE_VISIBILITY_MASK = 0x7
TYPE_PUBLIC = 0x1
TYPE_INTERFACE = 0x20
TYPE_ABSTRACT = 0x80

# Field flags (ECMA-335 II.23.1.5)
FIELD_ACCESS_MASK = 0x7
FIELD_PUBLIC = 0x6
FIELD_STATIC = 0x10
FIELD_INIT_ONLY = 0x20
FIELD_LITERAL = 0x40
FIELD_NOT_SERIALIZED = 0x80

# Metadata table numbers
TABLE_MODULE = 0x00
TABLE_TYPEREF = 0x01
TABLE_TYPEDEF = 0x02
TABLE_FIELDPTR = 0x03
TABLE_FIELD = 0x04


@dataclass
class DllFieldInfo:
    name: str
    flags: int

    @property
    def is_public(self) -> bool:
        return (self.flags & FIELD_ACCESS_MASK) == FIELD_PUBLIC

    @property
    def is_static(self) -> bool:
        return bool(self.flags & (FIELD_STATIC | FIELD_LITERAL))

    @property
    def is_init_only(self) -> bool:
        return bool(self.flags & FIELD_INIT_ONLY)

    @property
    def is_not_serialized(self) -> bool:
        return bool(self.flags & FIELD_NOT_SERIALIZED)


@dataclass
class DllTypeInfo:
    namespace: str
    name: str
    flags: int
    base_namespace: str = ""
    base_name: str = ""
    fields: list[DllFieldInfo] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}.{self.name}"
        return self.name

    @property
    def base_full_name(self) -> str | None:
        if not self.base_name:
            return None
        if self.base_namespace:
            return f"{self.base_namespace}.{self.base_name}"
        return self.base_name

    @property
    def is_public(self) -> bool:
        return (self.flags & TYPE_VISIBILITY_MASK) == TYPE_PUBLIC

    @property
    def is_interface(self) -> bool:
        return bool(self.flags & TYPE_INTERFACE)

    @property
    def is_abstract(self) -> bool:
        return bool(self.flags & TYPE_ABSTRACT)


def compute_unity_file_id(namespace: str, class_name: str) -> int:
    text = f"s\x00\x00\x00{namespace}{class_name}"
    digest = _md4(text.encode("utf-8"))
    return struct.unpack("<i", digest[:4])[0]


def inspect_dll(dll_path: Path) -> list[DllTypeInfo]:
    """Read the type definitions of an assembly.

    Returns an empty list for anything that is not a readable .NET assembly
    (native plugins, truncated files).
    """
    try:
        data = dll_path.read_bytes()
    except OSError:
        return []
    try:
        return _parse_dotnet_types(data)
    except (struct.error, ValueError, IndexError):
        return []


_dll_cache: dict[Path, list[DllTypeInfo]] = {}


def inspect_dll_cached(dll_path: Path) -> list[DllTypeInfo]:
    resolved = dll_path.resolve()
    if resolved not in _dll_cache:
        _dll_cache[resolved] = inspect_dll(dll_path)
    return _dll_cache[resolved]


def clear_dll_cache() -> None:
    _dll_cache.clear()


def resolve_dll_class_name(dll_path: Path, file_id: int) -> str | None:
    """Resolve a fileID to a class name within a DLL.

    Args:
        dll_path: Path to the .dll file
        file_id: Unity fileID (MD4 hash)

    Returns class name or None.
    """
    for t in inspect_dll_cached(dll_path):
        if compute_unity_file_id(t.namespace, t.name) == file_id:
            return t.name
    return None


# --- .NET PE/CLI metadata parser ---


def _parse_dotnet_types(data: bytes) -> list[DllTypeInfo]:
    if len(data) < 128:
        return []

    e_lfanew = struct.unpack_from("<I", data, 0x3C)[0]
    if e_lfanew + 4 > len(data) or data[e_lfanew : e_lfanew + 4] != b"PE\x00\x00":
        return []

    coff = e_lfanew + 4
    num_sections = struct.unpack_from("<H", data, coff + 2)[0]
    opt_header_size = struct.unpack_from("<H", data, coff + 16)[0]

    opt = coff + 20
    if opt + 2 > len(data):
        return []
    magic = struct.unpack_from("<H", data, opt)[0]

    if magic == 0x10B:
        data_dir_base = opt + 96
    elif magic == 0x20B:
        data_dir_base = opt + 112
    else:
        return []

    cli_dd = data_dir_base + 14 * 8
    if cli_dd + 8 > len(data):
        return []
    cli_rva = struct.unpack_from("<I", data, cli_dd)[0]
    if cli_rva == 0:
        return []

    sections = []
    for i in range(num_sections):
        so = opt + opt_header_size + i * 40
        if so + 40 > len(data):
            break
        va = struct.unpack_from("<I", data, so + 12)[0]
        vs = struct.unpack_from("<I", data, so + 8)[0]
        ro = struct.unpack_from("<I", data, so + 20)[0]
        rs = struct.unpack_from("<I", data, so + 16)[0]
        sections.append((va, vs, ro, rs))

    def rva_to_offset(rva: int) -> int | None:
        for va, vs, ro, rs in sections:
            if va <= rva < va + max(vs, rs):
                return rva - va + ro
        return None

    cli_off = rva_to_offset(cli_rva)
    if cli_off is None or cli_off + 16 > len(data):
        return []
    meta_rva = struct.unpack_from("<I", data, cli_off + 8)[0]

    meta_off = rva_to_offset(meta_rva)
    if meta_off is None or meta_off + 16 > len(data):
        return []
    if struct.unpack_from("<I", data, meta_off)[0] != 0x424A5342:
        return []

    ver_len = struct.unpack_from("<I", data, meta_off + 12)[0]
    sh_base = meta_off + 16 + ((ver_len + 3) & ~3)
    if sh_base + 4 > len(data):
        return []
    num_streams = struct.unpack_from("<H", data, sh_base + 2)[0]

    streams: dict[str, tuple[int, int]] = {}
    pos = sh_base + 4
    for _ in range(num_streams):
        if pos + 8 > len(data):
            return []
        s_off, s_size = struct.unpack_from("<II", data, pos)
        pos += 8
        name_start = pos
        while pos < len(data) and data[pos] != 0:
            pos += 1
        name = data[name_start:pos].decode("ascii", errors="replace")
        pos = ((pos + 1) + 3) & ~3
        streams[name] = (meta_off + s_off, s_size)

    str_off = streams.get("#Strings", (0, 0))[0]
    if str_off == 0:
        return []

    def read_str(idx: int) -> str:
        start = str_off + idx
        if start >= len(data):
            return ""
        end = data.index(b"\x00", start)
        return data[start:end].decode("utf-8", errors="replace")

    tbl_key = "#~" if "#~" in streams else "#-" if "#-" in streams else None
    if tbl_key is None:
        return []
    tbl_off = streams[tbl_key][0]
    if tbl_off + 24 > len(data):
        return []

    pos = tbl_off + 6
    heap_sizes = data[pos]
    pos += 2
    valid = struct.unpack_from("<Q", data, pos)[0]
    pos += 8
    pos += 8  # sorted

    rows: dict[int, int] = {}
    for i in range(64):
        if valid & (1 << i):
            if pos + 4 > len(data):
                return []
            rows[i] = struct.unpack_from("<I", data, pos)[0]
            pos += 4

    if not (valid & (1 << TABLE_TYPEDEF)):
        return []

    str_sz = 4 if heap_sizes & 0x01 else 2
    guid_sz = 4 if heap_sizes & 0x02 else 2
    blob_sz = 4 if heap_sizes & 0x04 else 2

    def tbl_idx_sz(t: int) -> int:
        return 4 if rows.get(t, 0) > 0xFFFF else 2

    def coded_idx_sz(tag_bits: int, tables: list[int]) -> int:
        mx = max((rows.get(t, 0) for t in tables), default=0)
        return 4 if mx >= (1 << (16 - tag_bits)) else 2

    res_scope_sz = coded_idx_sz(2, [0x00, 0x01, 0x1A, 0x23])
    tdr_sz = coded_idx_sz(2, [0x02, 0x01, 0x1B])
    field_idx_sz = tbl_idx_sz(TABLE_FIELD)

    row_sizes: dict[int, int] = {
        TABLE_MODULE: 2 + str_sz + 3 * guid_sz,
        TABLE_TYPEREF: res_scope_sz + 2 * str_sz,
        TABLE_TYPEDEF: 4 + 2 * str_sz + tdr_sz + field_idx_sz + tbl_idx_sz(0x06),
        TABLE_FIELDPTR: field_idx_sz,
        TABLE_FIELD: 2 + str_sz + blob_sz,
    }

    # Tables are stored back to back in table-number order
    table_offsets: dict[int, int] = {}
    offset = pos
    for t in range(TABLE_FIELD + 1):
        table_offsets[t] = offset
        offset += rows.get(t, 0) * row_sizes[t]

    def read_idx(at: int, size: int) -> int:
        return struct.unpack_from("<I" if size == 4 else "<H", data, at)[0]

    def typeref_name(row: int) -> tuple[str, str]:
        at = table_offsets[TABLE_TYPEREF] + (row - 1) * row_sizes[TABLE_TYPEREF] + res_scope_sz
        return read_str(read_idx(at + str_sz, str_sz)), read_str(read_idx(at, str_sz))

    def typedef_name(row: int) -> tuple[str, str]:
        at = table_offsets[TABLE_TYPEDEF] + (row - 1) * row_sizes[TABLE_TYPEDEF] + 4
        return read_str(read_idx(at + str_sz, str_sz)), read_str(read_idx(at, str_sz))

    def read_field(row: int) -> DllFieldInfo:
        at = table_offsets[TABLE_FIELD] + (row - 1) * row_sizes[TABLE_FIELD]
        flags = struct.unpack_from("<H", data, at)[0]
        return DllFieldInfo(name=read_str(read_idx(at + 2, str_sz)), flags=flags)

    num_typedefs = rows[TABLE_TYPEDEF]
    num_fields = rows.get(TABLE_FIELD, 0)
    # Field lists go through an indirection table in unoptimized metadata
    has_field_ptr = rows.get(TABLE_FIELDPTR, 0) > 0

    raw: list[tuple[int, int, int, int, int]] = []
    for i in range(num_typedefs):
        row_off = table_offsets[TABLE_TYPEDEF] + i * row_sizes[TABLE_TYPEDEF]
        if row_off + row_sizes[TABLE_TYPEDEF] > len(data):
            break
        flags = struct.unpack_from("<I", data, row_off)[0]
        name_idx = read_idx(row_off + 4, str_sz)
        ns_idx = read_idx(row_off + 4 + str_sz, str_sz)
        extends = read_idx(row_off + 4 + 2 * str_sz, tdr_sz)
        field_list = read_idx(row_off + 4 + 2 * str_sz + tdr_sz, field_idx_sz)
        raw.append((flags, name_idx, ns_idx, extends, field_list))

    result: list[DllTypeInfo] = []

    for i, (flags, name_idx, ns_idx, extends, field_list) in enumerate(raw):
        name = read_str(name_idx)
        if name == "<Module>":
            continue

        info = DllTypeInfo(namespace=read_str(ns_idx), name=name, flags=flags)

        # Extends is a TypeDefOrRef coded index; TypeSpec (generic base) is not resolved
        tag, row = extends & 0x3, extends >> 2
        if row:
            if tag == 0 and row <= num_typedefs:
                info.base_namespace, info.base_name = typedef_name(row)
            elif tag == 1 and row <= rows.get(TABLE_TYPEREF, 0):
                info.base_namespace, info.base_name = typeref_name(row)

        if not has_field_ptr:
            field_end = raw[i + 1][4] if i + 1 < len(raw) else num_fields + 1
            for field_row in range(field_list, min(field_end, num_fields + 1)):
                info.fields.append(read_field(field_row))

        result.append(info)

    return result


# --- MD4 hash (RFC 1320) ---


def _md4(data: bytes) -> bytes:
    try:
        import hashlib

        return hashlib.new("md4", data, usedforsecurity=False).digest()
    except (ValueError, TypeError):
        return _md4_pure(data)


def _md4_pure(data: bytes) -> bytes:
    def _rol(n: int, b: int) -> int:
        return ((n << b) | (n >> (32 - b))) & 0xFFFFFFFF

    def _f(x: int, y: int, z: int) -> int:
        return (x & y) | ((~x) & z)

    def _g(x: int, y: int, z: int) -> int:
        return (x & y) | (x & z) | (y & z)

    def _h(x: int, y: int, z: int) -> int:
        return x ^ y ^ z

    msg = bytearray(data)
    orig_len = len(data)
    msg.append(0x80)
    while len(msg) % 64 != 56:
        msg.append(0)
    msg += struct.pack("<Q", orig_len * 8)

    a0, b0, c0, d0 = 0x67452301, 0xEFCDAB89, 0x98BADCFE, 0x10325476

    for i in range(0, len(msg), 64):
        words = struct.unpack_from("<16I", msg, i)
        a, b, c, d = a0, b0, c0, d0

        for k in range(16):
            a = _rol((a + _f(b, c, d) + words[k]) & 0xFFFFFFFF, (3, 7, 11, 19)[k % 4])
            a, b, c, d = d, a, b, c

        for j in range(16):
            k = (j % 4) * 4 + j // 4
            a = _rol((a + _g(b, c, d) + words[k] + 0x5A827999) & 0xFFFFFFFF, (3, 5, 9, 13)[j % 4])
            a, b, c, d = d, a, b, c

        r3_order = (0, 8, 4, 12, 2, 10, 6, 14, 1, 9, 5, 13, 3, 11, 7, 15)
        for j in range(16):
            a = _rol((a + _h(b, c, d) + words[r3_order[j]] + 0x6ED9EBA1) & 0xFFFFFFFF, (3, 9, 11, 15)[j % 4])
            a, b, c, d = d, a, b, c

        a0 = (a0 + a) & 0xFFFFFFFF
        b0 = (b0 + b) & 0xFFFFFFFF
        c0 = (c0 + c) & 0xFFFFFFFF
        d0 = (d0 + d) & 0xFFFFFFFF

    return struct.pack("<4I", a0, b0, c0, d0)
