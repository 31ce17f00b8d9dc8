"""Tests for the range table builder."""

from typing import Dict, Iterator, List, Optional

import pytest

from ip_country.addresses import to_table_int
from ip_country.builder import BuilderConfig, RangeTableBuilder, build_from_source
from ip_country.errors import ConsistencyError
from ip_country.ranges import RangeEntry
from ip_country.sources import MMDBSource, RangeSource

from mmdb_factory import MMDBFactory, four_blocks_database, world_database


def entry(start: str, end: str, code: str) -> RangeEntry:
    return RangeEntry(to_table_int(start), to_table_int(end), code)


class ListSource(RangeSource):
    """Source over a fixed list, with an optional wrong answer."""

    def __init__(self, entries: List[RangeEntry], wrong: Optional[Dict[int, str]] = None):
        self.entries = entries
        self.wrong = wrong or {}

    @property
    def description(self) -> str:
        return "list"

    def ranges(self) -> Iterator[RangeEntry]:
        return iter(self.entries)

    def lookup(self, address) -> Optional[str]:
        value = to_table_int(address)
        if value in self.wrong:
            return self.wrong[value]
        for e in self.entries:
            if e.contains(value):
                return e.country_code
        return None


class TestBuilderConfig:
    """Tests for BuilderConfig."""

    def test_default_config(self):
        """Test default configuration values."""
        config = BuilderConfig()
        assert config.drop_codes == ("ZZ",)
        assert config.verify_samples == 256
        assert config.seed == 42

    def test_custom_config(self):
        """Test custom configuration values."""
        config = BuilderConfig(drop_codes=("zz", "xx"), verify_samples=0, seed=7)
        assert config.drop_codes == ("ZZ", "XX")
        assert config.verify_samples == 0
        assert config.seed == 7

    def test_invalid_verify_samples(self):
        """Test that negative verify_samples raises error."""
        with pytest.raises(ValueError):
            BuilderConfig(verify_samples=-1)

    def test_invalid_drop_code(self):
        """Test that drop codes must be two letters."""
        with pytest.raises(ValueError):
            BuilderConfig(drop_codes=("ZZZ",))


class TestRangeTableBuilder:
    """Tests for RangeTableBuilder.build."""

    def test_minimal_table(self):
        """Test the four /30 blocks collapse to two entries."""
        source = MMDBSource(four_blocks_database())
        builder = RangeTableBuilder()
        table = builder.build(source.ranges())

        assert list(table) == [
            entry("10.0.0.0", "10.0.0.7", "AU"),
            entry("10.0.0.8", "10.0.0.11", "NZ"),
        ]
        assert builder.stats.ranges_enumerated == 3
        assert builder.stats.ranges_merged == 1
        assert builder.stats.entries_emitted == 2
        assert builder.stats.ipv4_entries == 2
        assert builder.stats.ipv6_entries == 0

        assert table.lookup("10.0.0.0") == "AU"
        assert table.lookup("10.0.0.7") == "AU"
        assert table.lookup("10.0.0.8") == "NZ"
        assert table.lookup("10.0.0.11") == "NZ"
        assert table.lookup("10.0.0.12") is None
        assert table.lookup("10.0.0.15") is None

    @pytest.mark.parametrize("record_size", [24, 28, 32])
    def test_record_size_independent(self, record_size):
        """Test the table does not depend on the record layout."""
        builder = RangeTableBuilder()
        expected = builder.build(MMDBSource(four_blocks_database(record_size=24)).ranges())
        actual = builder.build(MMDBSource(four_blocks_database(record_size=record_size)).ranges())
        assert list(actual) == list(expected)

    def test_unsorted_input(self):
        """Test entries are sorted before merging."""
        table = RangeTableBuilder().build([
            entry("2001:db8::", "2001:db8::ff", "DE"),
            entry("1.0.1.0", "1.0.1.255", "AU"),
            entry("1.0.0.0", "1.0.0.255", "AU"),
        ])
        assert list(table) == [
            entry("1.0.0.0", "1.0.1.255", "AU"),
            entry("2001:db8::", "2001:db8::ff", "DE"),
        ]

    def test_gap_not_merged(self):
        """Test same-code ranges with a gap stay separate."""
        table = RangeTableBuilder().build([
            entry("1.0.0.0", "1.0.0.255", "AU"),
            entry("1.0.2.0", "1.0.2.255", "AU"),
        ])
        assert len(table) == 2

    def test_chain_merge(self):
        """Test a run of touching ranges merges into one."""
        entries = [RangeEntry(i * 10, i * 10 + 9, "AU") for i in range(50)]
        builder = RangeTableBuilder()
        table = builder.build(entries)
        assert list(table) == [RangeEntry(0, 499, "AU")]
        assert builder.stats.ranges_merged == 49

    def test_overlap_rejected(self):
        """Test overlapping source ranges raise ConsistencyError."""
        with pytest.raises(ConsistencyError, match="overlap"):
            RangeTableBuilder().build([
                entry("1.0.0.0", "1.0.0.255", "AU"),
                entry("1.0.0.128", "1.0.1.255", "AU"),
            ])

    def test_drop_unknown(self):
        """Test ZZ ranges are left uncovered by default."""
        builder = RangeTableBuilder()
        table = builder.build([
            entry("1.0.0.0", "1.0.0.255", "AU"),
            entry("1.0.1.0", "1.0.1.255", "ZZ"),
            entry("1.0.2.0", "1.0.2.255", "AU"),
        ])
        assert table.lookup("1.0.1.5") is None
        assert "ZZ" not in table.country_codes()
        # The gap left by ZZ keeps the two AU ranges apart
        assert len(table) == 2
        assert builder.stats.ranges_dropped == 1

    def test_keep_unknown(self):
        """Test an empty drop list keeps every code."""
        table = RangeTableBuilder(BuilderConfig(drop_codes=())).build([
            entry("1.0.1.0", "1.0.1.255", "ZZ"),
        ])
        assert table.lookup("1.0.1.5") == "ZZ"

    def test_names_filtered(self):
        """Test only names of codes present in the table are kept."""
        table = RangeTableBuilder().build(
            [entry("1.0.0.0", "1.0.0.255", "AU")],
            {"AU": "Australia", "FR": "France"},
        )
        assert table.names == {"AU": "Australia"}

    def test_empty_input(self):
        """Test an empty source gives an empty table."""
        table = RangeTableBuilder().build([])
        assert len(table) == 0
        assert table.lookup("1.2.3.4") is None

    def test_stats_reset(self):
        """Test stats describe the latest build only."""
        builder = RangeTableBuilder()
        builder.build([entry("1.0.0.0", "1.0.0.255", "AU")])
        builder.build([entry("1.0.0.0", "1.0.0.255", "AU"), entry("2.0.0.0", "2.0.0.255", "NZ")])
        assert builder.stats.ranges_enumerated == 2

    def test_overlapping_ipv4_mapped_subtree(self):
        """Test IPv4 data stored both at ::/96 and ::ffff:0:0/96 with conflicting codes."""
        factory = MMDBFactory(ip_version=6)
        factory.insert("1.0.0.0/24", "AU").insert("::ffff:1.0.0.0/120", "FR")
        source = MMDBSource(factory.build())
        with pytest.raises(ConsistencyError):
            RangeTableBuilder().build(source.ranges())


class TestVerify:
    """Tests for RangeTableBuilder.verify."""

    def test_verify_passes(self):
        """Test a table built from a source agrees with it."""
        source = ListSource([
            entry("1.0.0.0", "1.0.0.255", "AU"),
            entry("1.0.1.0", "1.0.1.255", "ZZ"),
            entry("2001:db8::", "2001:db8::ff", "DE"),
        ])
        builder = RangeTableBuilder()
        table = builder.build(source.ranges())
        checks = builder.verify(table, source)
        assert checks > 0
        assert builder.stats.verification_checks == checks

    def test_verify_detects_mismatch(self):
        """Test a disagreement at an entry edge is reported."""
        edge = to_table_int("1.0.0.255")
        source = ListSource([entry("1.0.0.0", "1.0.0.255", "AU")], wrong={edge: "NZ"})
        builder = RangeTableBuilder()
        table = builder.build(source.ranges())
        with pytest.raises(ConsistencyError, match="1.0.0.255"):
            builder.verify(table, source)

    def test_verify_deterministic(self):
        """Test the same seed gives the same number of checks."""
        source = MMDBSource(world_database())
        config = BuilderConfig(verify_samples=3, seed=1)
        first = RangeTableBuilder(config)
        second = RangeTableBuilder(config)
        table = first.build(source.ranges())
        assert first.verify(table, source) == second.verify(table, source)


class TestBuildFromSource:
    """Tests for build_from_source."""

    def test_world_database(self):
        """Test building and verifying a mixed IPv4/IPv6 database."""
        table, stats = build_from_source(MMDBSource(world_database()))

        assert stats.ranges_enumerated == 9
        assert stats.ranges_dropped == 1
        assert stats.verification_checks > 0
        # IPv4-mapped addresses sort before global IPv6 space
        assert list(table) == [
            entry("1.0.0.0", "1.0.0.255", "AU"),
            entry("1.0.1.0", "1.0.3.255", "CN"),
            entry("8.8.8.0", "8.8.8.255", "US"),
            entry("77.75.77.0", "77.75.77.255", "CZ"),
            entry("2001:db8::", "2001:db8:ffff:ffff:ffff:ffff:ffff:ffff", "DE"),
            entry("2607:f8b0::", "2607:f8b0:ffff:ffff:ffff:ffff:ffff:ffff", "US"),
            entry("2a00:1450::", "2a00:1457:ffff:ffff:ffff:ffff:ffff:ffff", "IE"),
        ]
        assert table.names == {
            "AU": "Australia",
            "CN": "China",
            "CZ": "Czechia",
            "DE": "Germany",
            "IE": "Ireland",
            "US": "United States",
        }

    def test_lookups_match_database(self):
        """Test every sampled address gives the database's answer."""
        source = MMDBSource(world_database())
        table, _ = build_from_source(source, BuilderConfig(verify_samples=0))
        for address in ["1.0.0.0", "1.0.3.255", "1.0.4.0", "8.8.8.8", "100.64.0.1",
                        "2001:db8::", "2a00:1457:ffff::1", "2002:100:1::", "::1.0.0.1"]:
            expected = source.lookup(address)
            assert table.lookup(address) == (None if expected == "ZZ" else expected)

    def test_deterministic(self):
        """Test two builds of the same input are identical."""
        first, _ = build_from_source(MMDBSource(world_database()))
        second, _ = build_from_source(MMDBSource(world_database()))
        assert list(first) == list(second)
        assert first.names == second.names

    def test_verification_disabled(self):
        """Test verify_samples=0 skips verification."""
        _, stats = build_from_source(MMDBSource(world_database()), BuilderConfig(verify_samples=0))
        assert stats.verification_checks == 0
