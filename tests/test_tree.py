"""Tests for the search tree walker."""

import pytest

from ip_country.database import CountryDatabase
from ip_country.errors import DecodeError, OutOfBounds
from ip_country.metadata import Metadata
from ip_country.reader import BinaryReader
from ip_country.tree import NO_DATA, ChildNode, DataOffset, SearchTree

from mmdb_factory import MMDBFactory, raw_database, world_database


def single_node_tree(node: bytes, record_size: int, node_count: int = 1) -> SearchTree:
    meta = Metadata(node_count=node_count, record_size=record_size, ip_version=4)
    return SearchTree(BinaryReader(node + b"\x00" * 64), meta)


class TestNodeLayout:
    """Tests for reading the three record layouts."""

    def test_24_bit_records(self):
        """Test 24-bit nodes are two three-byte values."""
        tree = single_node_tree(bytes.fromhex("123456abcdef"), 24)
        assert tree.records(0) == (0x123456, 0xABCDEF)

    def test_28_bit_records(self):
        """Test the shared middle byte of 28-bit nodes."""
        # left = 0x1234567, right = 0x89ABCDE
        tree = single_node_tree(bytes.fromhex("234567189abcde"), 28)
        assert tree.records(0) == (0x1234567, 0x89ABCDE)

    def test_32_bit_records(self):
        """Test 32-bit nodes are two four-byte values."""
        tree = single_node_tree(bytes.fromhex("0102030405060708"), 32)
        assert tree.records(0) == (0x01020304, 0x05060708)

    def test_node_index_out_of_range(self):
        """Test reading a node past node_count."""
        tree = single_node_tree(bytes(6), 24)
        with pytest.raises(OutOfBounds):
            tree.records(1)
        with pytest.raises(OutOfBounds):
            tree.records(-1)


class TestRecordClassification:
    """Tests for interpreting record values."""

    def test_classify(self):
        """Test child, no-data and data records."""
        tree = single_node_tree(bytes(6 * 4), 24, node_count=4)
        assert tree.classify(3) == ChildNode(3)
        assert tree.classify(4) is NO_DATA
        assert tree.classify(25) == DataOffset(21)

    def test_data_offset_inside_separator(self):
        """Test data records must point past the 16-byte separator."""
        tree = single_node_tree(bytes(6), 24)
        with pytest.raises(DecodeError, match="separator"):
            tree.resolve_data_offset(DataOffset(15))

    def test_data_offset_past_end(self):
        """Test data records beyond the buffer."""
        tree = single_node_tree(bytes(6), 24)
        with pytest.raises(OutOfBounds):
            tree.resolve_data_offset(DataOffset(10000))

    def test_data_offset_into_metadata(self):
        """Test data records landing on the metadata marker are out of bounds."""
        # Left record 18 resolves to 6 + 17 = 23, where the marker starts
        data = raw_database(bytes.fromhex("000012000001"), node_count=1, data=b"\x40")
        db = CountryDatabase(data)
        assert db.metadata.data_section_end == 23
        with pytest.raises(OutOfBounds):
            db.tree.resolve_data_offset(DataOffset(17))
        with pytest.raises(OutOfBounds):
            db.lookup("1.2.3.4")

    def test_resolve_data_offset(self):
        """Test the absolute offset is search tree size plus the record offset."""
        tree = single_node_tree(bytes(6), 24)
        assert tree.resolve_data_offset(DataOffset(20)) == 6 + 20


class TestWalk:
    """Tests for SearchTree.walk and the IPv4 start node."""

    @pytest.mark.parametrize("record_size", [24, 28, 32])
    def test_walk_reaches_data(self, record_size):
        """Test walking an IPv4 tree for a covered address."""
        data = MMDBFactory(ip_version=4, record_size=record_size).insert("10.0.0.0/8", "AU").build()
        db = CountryDatabase(data)
        record, prefix_len = db.tree.walk(0x0A010203, 32)
        assert isinstance(record, DataOffset)
        assert prefix_len == 8

    def test_walk_uncovered(self):
        """Test an uncovered address ends in NO_DATA."""
        data = MMDBFactory(ip_version=4).insert("10.0.0.0/8", "AU").build()
        db = CountryDatabase(data)
        record, prefix_len = db.tree.walk(0x0B000000, 32)
        assert record is NO_DATA
        assert prefix_len == 8

    def test_walk_too_deep(self):
        """Test a tree that never terminates within the address width."""
        # Node 0 points to itself on both sides
        data = raw_database(bytes(6), node_count=1)
        db = CountryDatabase(data)
        with pytest.raises(DecodeError, match="deeper"):
            db.tree.walk(0, 32)

    def test_walk_avoid(self):
        """Test reaching the avoided node yields NO_DATA."""
        db = CountryDatabase(world_database())
        ipv4_start = db.tree.ipv4_start_node
        record, prefix_len = db.tree.walk(0x01000001, 128, avoid=ipv4_start)
        assert record is NO_DATA
        assert prefix_len == 96

    def test_ipv4_start_node(self):
        """Test the IPv4 subtree is found in an IPv6 tree."""
        db = CountryDatabase(world_database())
        node = db.tree.ipv4_start_node
        assert node is not None
        record, _ = db.tree.walk(0x01000001, 32, node=node)
        assert isinstance(record, DataOffset)

    def test_ipv4_start_node_ipv4_tree(self):
        """Test IPv4 trees have no separate IPv4 subtree."""
        data = MMDBFactory(ip_version=4).insert("10.0.0.0/8", "AU").build()
        assert CountryDatabase(data).tree.ipv4_start_node is None

    def test_ipv4_start_node_without_ipv4_data(self):
        """Test an IPv6 tree whose zero path ends early."""
        data = MMDBFactory(ip_version=6).insert("2001:db8::/32", "DE").build()
        assert CountryDatabase(data).tree.ipv4_start_node is None
