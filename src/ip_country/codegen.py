"""
Source code generation for range tables.

Emits the table as a literal constant plus a lookup routine, either as a
self-contained Python module or as a header-only C++ file. Output depends
only on the table and the arguments, so regenerating from the same
database yields byte-identical text.
"""

from typing import List, Optional

from .lookup import RangeTable

GENERATED_BANNER = "GENERATED CODE: REGENERATE, DO NOT MODIFY!"

FORMATS = ("python", "cpp")

PYTHON_LOOKUP = '''\
_STARTS = tuple(entry[0] for entry in RANGES)
_IPV4_MAPPED_BASE = 0xFFFF << 32


def _to_int(address):
    if isinstance(address, int):
        return address
    if isinstance(address, str):
        address = ipaddress.ip_address(address.strip())
    if address.version == 4:
        return _IPV4_MAPPED_BASE | int(address)
    return int(address)


def country_code(address):
    """Return the two-letter country code of address, or None."""
    value = _to_int(address)
    index = bisect_right(_STARTS, value) - 1
    if index >= 0 and value <= RANGES[index][1]:
        return RANGES[index][2]
    return None


def country_name(address):
    """Return the English name of the country of address, or None."""
    code = country_code(address)
    return COUNTRY_NAMES.get(code) if code is not None else None
'''

CPP_LOOKUP = '''\
inline bool less_or_equal(std::uint64_t a_hi, std::uint64_t a_lo,
                          std::uint64_t b_hi, std::uint64_t b_lo) {
    return a_hi < b_hi || (a_hi == b_hi && a_lo <= b_lo);
}

// Country code for the 128-bit address hi:lo, or nullptr if uncovered.
inline const char* country_code(std::uint64_t hi, std::uint64_t lo) {
    const IpRange* first = RANGES;
    const IpRange* last = RANGES + RANGE_COUNT;
    const IpRange* it = std::upper_bound(first, last, 0,
        [hi, lo](int, const IpRange& r) {
            return !less_or_equal(r.start_hi, r.start_lo, hi, lo);
        });
    if (it == first) {
        return nullptr;
    }
    --it;
    return less_or_equal(hi, lo, it->end_hi, it->end_lo) ? it->code : nullptr;
}

// Country code for an IPv4 address in host byte order, or nullptr.
inline const char* country_code_v4(std::uint32_t address) {
    return country_code(0, IPV4_MAPPED_LO | address);
}
'''


def _summary_lines(table: RangeTable, source: str) -> List[str]:
    source = " ".join(source.split())
    return [
        f"Source: {source}",
        f"Entries: {len(table)} (IPv4: {table.ipv4_count}, IPv6: {table.ipv6_count})",
        f"Countries: {len(table.country_codes())}",
    ]


def generate_python_module(table: RangeTable, source: str = "unknown") -> str:
    """
    Generate a self-contained Python module for a range table.

    The module defines RANGES, COUNTRY_NAMES, country_code(address) and
    country_name(address). It only imports from the standard library.

    Args:
        table: Finished range table
        source: Description of the data source, written into the header comment

    Returns:
        Python source code as a string
    """
    lines = [f"# {GENERATED_BANNER}"]
    lines.extend(f"# {line}" for line in _summary_lines(table, source))
    lines.extend([
        "",
        '"""IP address to country lookup table."""',
        "",
        "from bisect import bisect_right",
        "import ipaddress",
        "",
    ])

    lines.append("# (start, end, country_code): inclusive 128-bit bounds, sorted by start.")
    lines.append("# IPv4 addresses are stored in the IPv4-mapped block ::ffff:0:0/96.")
    if len(table):
        lines.append("RANGES = (")
        for entry in table.entries:
            lines.append(f'    (0x{entry.start:032x}, 0x{entry.end:032x}, "{entry.country_code}"),')
        lines.append(")")
    else:
        lines.append("RANGES = ()")
    lines.append("")

    if table.names:
        lines.append("COUNTRY_NAMES = {")
        for code in sorted(table.names):
            lines.append(f'    "{code}": {table.names[code]!r},')
        lines.append("}")
    else:
        lines.append("COUNTRY_NAMES = {}")
    lines.append("")

    return "\n".join(lines) + PYTHON_LOOKUP


def _cpp_string(text: str) -> str:
    # Octal escapes cannot run into the following character like \x can
    chars = []
    for byte in text.encode("utf-8"):
        if chr(byte) in "\\\"":
            chars.append("\\" + chr(byte))
        elif 0x20 <= byte < 0x7F:
            chars.append(chr(byte))
        else:
            chars.append(f"\\{byte:03o}")
    return '"' + "".join(chars) + '"'


def generate_cpp_header(
    table: RangeTable,
    source: str = "unknown",
    namespace: str = "ip_country",
) -> str:
    """
    Generate a header-only C++ file for a range table.

    Addresses are split into 64-bit halves (hi, lo). IPv4 addresses are
    looked up in the IPv4-mapped block.

    Args:
        table: Finished range table
        source: Description of the data source
        namespace: C++ namespace for the generated symbols

    Returns:
        C++ header as a string
    """
    guard = f"{namespace.upper()}_COUNTRY_TABLE_HPP"
    mask = (1 << 64) - 1

    lines = [f"// {GENERATED_BANNER}"]
    lines.extend(f"// {line}" for line in _summary_lines(table, source))
    lines.extend([
        "",
        f"#ifndef {guard}",
        f"#define {guard}",
        "",
        "#include <algorithm>",
        "#include <cstddef>",
        "#include <cstdint>",
        "",
        f"namespace {namespace} {{",
        "",
        "struct IpRange {",
        "    std::uint64_t start_hi;",
        "    std::uint64_t start_lo;",
        "    std::uint64_t end_hi;",
        "    std::uint64_t end_lo;",
        "    char code[3];",
        "};",
        "",
        "struct CountryName {",
        "    char code[3];",
        "    const char* name;",
        "};",
        "",
        "static constexpr std::uint64_t IPV4_MAPPED_LO = 0x0000ffff00000000ULL;",
        "",
        "static constexpr IpRange RANGES[] = {",
    ])

    for entry in table.entries:
        lines.append(
            f"    {{0x{entry.start >> 64:016x}ULL, 0x{entry.start & mask:016x}ULL, "
            f"0x{entry.end >> 64:016x}ULL, 0x{entry.end & mask:016x}ULL, "
            f'"{entry.country_code}"}},'
        )
    if not len(table):
        # Zero-length arrays are ill-formed; RANGE_COUNT stays 0
        lines.append('    {0, 0, 0, 0, ""},')
    lines.append("};")
    lines.append(f"static constexpr std::size_t RANGE_COUNT = {len(table)};")
    lines.append("")

    lines.append("static constexpr CountryName COUNTRY_NAMES[] = {")
    for code in sorted(table.names):
        lines.append(f'    {{"{code}", {_cpp_string(table.names[code])}}},')
    if not table.names:
        lines.append('    {"", ""},')
    lines.append("};")
    lines.append(f"static constexpr std::size_t COUNTRY_NAME_COUNT = {len(table.names)};")
    lines.append("")

    lines.append(CPP_LOOKUP)
    lines.append(f"}}  // namespace {namespace}")
    lines.append("")
    lines.append(f"#endif  // {guard}")
    lines.append("")
    return "\n".join(lines)


def generate_source(
    table: RangeTable,
    fmt: str = "python",
    source: str = "unknown",
    namespace: Optional[str] = None,
) -> str:
    """Generate code in one of FORMATS."""
    if fmt == "python":
        return generate_python_module(table, source)
    if fmt == "cpp":
        return generate_cpp_header(table, source, namespace or "ip_country")
    raise ValueError(f"Unknown format {fmt!r}, expected one of {FORMATS}")
