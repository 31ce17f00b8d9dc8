"""
IP range entries and the full-tree range enumerator.
"""

from dataclasses import dataclass
from typing import Iterator

from .addresses import IPV4_BITS, IPV4_MAPPED_BASE, MAX_ADDRESS, from_table_int, is_ipv4_mapped
from .database import CountryDatabase
from .errors import DecodeError
from .tree import NO_DATA, ChildNode, DataOffset

# Depth of ::/96, where an IPv6 tree keeps its IPv4 subtree
IPV4_SUBTREE_DEPTH = 96


@dataclass(frozen=True)
class RangeEntry:
    """
    An inclusive block of addresses assigned to one country.

    start and end are 128-bit table values (IPv4 in ::ffff:0:0/96).
    """
    start: int
    end: int
    country_code: str

    def __post_init__(self):
        if not 0 <= self.start <= self.end <= MAX_ADDRESS:
            raise ValueError(
                f"Invalid range: start={self.start:#x}, end={self.end:#x}"
            )

    @property
    def size(self) -> int:
        """Number of addresses in the range."""
        return self.end - self.start + 1

    @property
    def is_ipv4(self) -> bool:
        return is_ipv4_mapped(self.start) and is_ipv4_mapped(self.end)

    def contains(self, value: int) -> bool:
        return self.start <= value <= self.end

    def __str__(self) -> str:
        return f"{from_table_int(self.start)}-{from_table_int(self.end)} {self.country_code}"


def enumerate_ranges(database: CountryDatabase) -> Iterator[RangeEntry]:
    """
    Walk every path of the search tree once and yield the covered ranges.

    Bit 0 subtrees are visited before bit 1 subtrees, so ranges come out
    in address order, except that the IPv4 subtree of an IPv6 tree is
    re-based from ::/96 into ::ffff:0:0/96 when it is reached. Other paths
    into the IPv4 subtree (the ::ffff:0:0/96 and 2002::/16 aliases) are
    skipped so every IPv4 block is reported once.

    Args:
        database: Database to enumerate

    Yields:
        RangeEntry for every data record reachable from the root
    """
    tree = database.tree
    width = tree.depth
    base = IPV4_MAPPED_BASE if width == IPV4_BITS else 0
    ipv4_start = tree.ipv4_start_node

    # (record, prefix, depth) where depth is the prefix length of record
    stack = [(ChildNode(0), 0, 0)]
    while stack:
        record, prefix, depth = stack.pop()

        if isinstance(record, DataOffset):
            country = database.country_at(record)
            start = base + prefix
            yield RangeEntry(start, start + (1 << (width - depth)) - 1, country.code)
            continue

        if record is NO_DATA:
            continue

        node = record.index
        if node == ipv4_start:
            if depth == IPV4_SUBTREE_DEPTH and prefix == 0:
                prefix = IPV4_MAPPED_BASE
            else:
                continue

        if depth >= width:
            raise DecodeError(
                f"Search tree continues past {width} bits at node {node}"
            )

        left, right = tree.records(node)
        host_bits = width - depth - 1
        stack.append((tree.classify(right), prefix | (1 << host_bits), depth + 1))
        stack.append((tree.classify(left), prefix, depth + 1))
