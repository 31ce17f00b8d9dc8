"""
Metadata block decoding.

The metadata is a map stored after the last occurrence of
METADATA_MARKER at the end of the file. It describes the search tree
layout needed to read everything else.
"""

from dataclasses import dataclass, field
from typing import Dict, List

from .decoder import Decoder
from .errors import DecodeError, MissingMetadata, OutOfBounds, UnsupportedFormat
from .reader import BinaryReader


METADATA_MARKER = b"\xab\xcd\xefMaxMind.com"

SUPPORTED_RECORD_SIZES = (24, 28, 32)
SUPPORTED_IP_VERSIONS = (4, 6)
SUPPORTED_MAJOR_VERSION = 2

# Zero bytes between the search tree and the data section
DATA_SECTION_SEPARATOR_SIZE = 16

REQUIRED_KEYS = ("node_count", "record_size", "ip_version")


@dataclass(frozen=True)
class Metadata:
    """Decoded database metadata."""

    node_count: int
    """Number of nodes in the search tree."""

    record_size: int
    """Bit width of each child record (24, 28 or 32)."""

    ip_version: int
    """4 for IPv4-only trees, 6 for IPv6 trees (which also hold IPv4)."""

    binary_format_major_version: int = SUPPORTED_MAJOR_VERSION
    binary_format_minor_version: int = 0
    build_epoch: int = 0
    database_type: str = ""
    languages: List[str] = field(default_factory=list)
    description: Dict[str, str] = field(default_factory=dict)

    data_section_end: int = 0
    """Offset of the metadata marker, where the data section ends (0 if unknown)."""

    @property
    def tree_depth(self) -> int:
        """Address width walked by the tree, in bits."""
        return 32 if self.ip_version == 4 else 128

    @property
    def node_byte_size(self) -> int:
        return self.record_size * 2 // 8

    @property
    def search_tree_size(self) -> int:
        return self.node_count * self.node_byte_size

    @property
    def data_section_start(self) -> int:
        return self.search_tree_size + DATA_SECTION_SEPARATOR_SIZE


def read_metadata(reader: BinaryReader) -> Metadata:
    """
    Locate and decode the metadata block.

    Args:
        reader: Reader over the whole database

    Returns:
        Validated Metadata

    Raises:
        MissingMetadata: marker absent, metadata truncated or incomplete
        UnsupportedFormat: record size, IP version or major version unsupported
        OutOfBounds: the search tree described does not fit in the buffer
    """
    marker_offset = reader.rfind(METADATA_MARKER)
    if marker_offset < 0:
        raise MissingMetadata("Metadata marker not found in database")

    start = marker_offset + len(METADATA_MARKER)
    decoder = Decoder(reader, pointer_base=start)
    try:
        raw = decoder.decode_value(start)
    except OutOfBounds as e:
        raise MissingMetadata(f"Metadata at offset {start} is truncated: {e}") from e
    except DecodeError as e:
        raise MissingMetadata(f"Metadata at offset {start} is malformed: {e}") from e

    if not isinstance(raw, dict):
        raise MissingMetadata(
            f"Metadata at offset {start} is a {type(raw).__name__}, expected a map"
        )

    missing = [key for key in REQUIRED_KEYS if not isinstance(raw.get(key), int)]
    if missing:
        raise MissingMetadata(f"Metadata is missing required keys: {', '.join(missing)}")

    major = raw.get("binary_format_major_version", SUPPORTED_MAJOR_VERSION)
    if major != SUPPORTED_MAJOR_VERSION:
        raise UnsupportedFormat(
            f"Binary format major version {major} unsupported, expected {SUPPORTED_MAJOR_VERSION}"
        )

    if raw["record_size"] not in SUPPORTED_RECORD_SIZES:
        raise UnsupportedFormat(
            f"Record size {raw['record_size']} unsupported, expected one of {SUPPORTED_RECORD_SIZES}"
        )

    if raw["ip_version"] not in SUPPORTED_IP_VERSIONS:
        raise UnsupportedFormat(
            f"IP version {raw['ip_version']} unsupported, expected one of {SUPPORTED_IP_VERSIONS}"
        )

    description = raw.get("description")
    languages = raw.get("languages")
    metadata = Metadata(
        node_count=raw["node_count"],
        record_size=raw["record_size"],
        ip_version=raw["ip_version"],
        binary_format_major_version=major,
        binary_format_minor_version=raw.get("binary_format_minor_version", 0),
        build_epoch=raw.get("build_epoch", 0),
        database_type=raw.get("database_type", ""),
        languages=list(languages) if isinstance(languages, list) else [],
        description=dict(description) if isinstance(description, dict) else {},
        data_section_end=marker_offset,
    )

    if metadata.node_count <= 0:
        raise UnsupportedFormat(f"Node count {metadata.node_count} must be positive")

    if metadata.data_section_start > marker_offset:
        raise OutOfBounds(
            f"Search tree of {metadata.node_count} nodes ({metadata.search_tree_size} bytes) "
            f"does not fit before the metadata at offset {marker_offset}"
        )

    return metadata
