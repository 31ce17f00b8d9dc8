"""
Binary search tree walker.

The search tree is a flat array of fixed-size nodes. Each node holds two
records (left for bit 0, right for bit 1). A record value is either the
index of another node, the "no data" sentinel (equal to node_count) or a
reference into the data section (anything above node_count).
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from .errors import DecodeError, OutOfBounds
from .metadata import DATA_SECTION_SEPARATOR_SIZE, Metadata
from .reader import BinaryReader


@dataclass(frozen=True)
class ChildNode:
    """Record pointing at another node of the tree."""
    index: int


@dataclass(frozen=True)
class DataOffset:
    """Record pointing into the data section (value minus node_count)."""
    offset: int


class NoData:
    """Record marking an address block with no associated data."""

    def __repr__(self) -> str:
        return "NO_DATA"


NO_DATA = NoData()

Record = Union[ChildNode, NoData, DataOffset]


class SearchTree:
    """
    Walks the search tree of a database buffer by node index.

    Args:
        reader: Reader over the whole database
        metadata: Decoded metadata describing the tree layout
    """

    def __init__(self, reader: BinaryReader, metadata: Metadata):
        self.reader = reader
        self.metadata = metadata
        self.node_count = metadata.node_count
        self.record_size = metadata.record_size
        self.node_byte_size = metadata.node_byte_size
        self.depth = metadata.tree_depth
        self._ipv4_start: Optional[int] = None
        self._ipv4_start_known = False

    def records(self, node_index: int) -> Tuple[int, int]:
        """
        Read the raw (left, right) record values of a node.

        Args:
            node_index: Index of the node, 0 is the root

        Returns:
            Tuple of raw record values
        """
        if not 0 <= node_index < self.node_count:
            raise OutOfBounds(
                f"Node index {node_index} outside tree of {self.node_count} nodes"
            )

        offset = node_index * self.node_byte_size
        if self.record_size == 24:
            return self.reader.read_u24(offset), self.reader.read_u24(offset + 3)

        if self.record_size == 28:
            middle = self.reader.read_u8(offset + 3)
            left = ((middle >> 4) << 24) | self.reader.read_u24(offset)
            right = ((middle & 0x0F) << 24) | self.reader.read_u24(offset + 4)
            return left, right

        return self.reader.read_u32(offset), self.reader.read_u32(offset + 4)

    def classify(self, value: int) -> Record:
        """Interpret a raw record value."""
        if value < self.node_count:
            return ChildNode(value)
        if value == self.node_count:
            return NO_DATA
        return DataOffset(value - self.node_count)

    def child(self, node_index: int, bit: int) -> Record:
        """Follow the left (bit 0) or right (bit 1) record of a node."""
        return self.classify(self.records(node_index)[bit])

    def resolve_data_offset(self, record: DataOffset) -> int:
        """
        Convert a data record into an absolute buffer offset.

        The record value counts from the start of the 16-byte separator,
        so the absolute offset is search_tree_size + (value - node_count).
        """
        if record.offset < DATA_SECTION_SEPARATOR_SIZE:
            raise DecodeError(
                f"Data record {record.offset + self.node_count} points into the "
                f"section separator (node count {self.node_count})"
            )
        offset = self.metadata.search_tree_size + record.offset
        limit = self.metadata.data_section_end or len(self.reader)
        if offset >= limit:
            raise OutOfBounds(
                f"Data record resolves to offset {offset}, at or past the data section end {limit}"
            )
        return offset

    @property
    def ipv4_start_node(self) -> Optional[int]:
        """
        Node reached after walking 96 zero bits of an IPv6 tree.

        This is where IPv4 addresses (::a.b.c.d) live. None for IPv4 trees
        or when the zero path ends before depth 96.
        """
        if not self._ipv4_start_known:
            self._ipv4_start_known = True
            if self.depth == 128:
                node = 0
                for _ in range(96):
                    record = self.child(node, 0)
                    if not isinstance(record, ChildNode):
                        node = None
                        break
                    node = record.index
                self._ipv4_start = node
        return self._ipv4_start

    def walk(
        self,
        address: int,
        bit_count: int,
        node: int = 0,
        avoid: Optional[int] = None,
    ) -> Tuple[Record, int]:
        """
        Walk the tree for one address.

        Args:
            address: Address as an integer of bit_count bits
            bit_count: Number of address bits to consume
            node: Node to start from
            avoid: Node treated as "no data" if the walk reaches it

        Returns:
            Tuple of (terminal record, prefix length consumed from node)
        """
        for depth in range(bit_count):
            bit = (address >> (bit_count - depth - 1)) & 1
            record = self.child(node, bit)
            if not isinstance(record, ChildNode):
                return record, depth + 1
            node = record.index
            if node == avoid:
                return NO_DATA, depth + 1
        raise DecodeError(
            f"Search tree is deeper than {bit_count} bits at node {node}"
        )
