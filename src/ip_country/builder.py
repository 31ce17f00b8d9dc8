"""
Range table builder.

Turns the ranges produced by a source into the minimal sorted table:
sort, drop "unknown" codes, reject overlaps, merge touching ranges with
the same country, then verify the result against the source with
deterministic sample lookups.
"""

from dataclasses import dataclass
import random
from typing import Iterable, List, Optional, Tuple

from .addresses import MAX_ADDRESS, from_table_int
from .errors import ConsistencyError
from .lookup import RangeTable
from .ranges import RangeEntry
from .sources import RangeSource


@dataclass
class BuilderConfig:
    """Configuration for the range table builder."""

    drop_codes: Tuple[str, ...] = ("ZZ",)
    """Country codes meaning "unknown"; their ranges are left uncovered."""

    verify_samples: int = 256
    """Number of table entries to check against the source (0 disables)."""

    seed: int = 42
    """Random seed for deterministic verification sampling."""

    def __post_init__(self):
        if self.verify_samples < 0:
            raise ValueError("verify_samples must be non-negative")
        codes = tuple(code.upper() for code in self.drop_codes)
        for code in codes:
            if len(code) != 2 or not code.isalpha():
                raise ValueError(f"drop_codes entry {code!r} is not a two-letter code")
        self.drop_codes = codes


@dataclass
class BuilderStats:
    """Statistics collected while building a table."""

    ranges_enumerated: int = 0
    ranges_dropped: int = 0
    ranges_merged: int = 0
    entries_emitted: int = 0
    ipv4_entries: int = 0
    ipv6_entries: int = 0
    verification_checks: int = 0


class RangeTableBuilder:
    """
    Builds a RangeTable from enumerated ranges.

    Args:
        config: Builder configuration
    """

    def __init__(self, config: Optional[BuilderConfig] = None):
        self.config = config or BuilderConfig()
        self.stats = BuilderStats()

    def build(self, entries: Iterable[RangeEntry], names=None) -> RangeTable:
        """
        Build the minimal table.

        Args:
            entries: Ranges from a source, in any order
            names: Optional country code to name mapping for the table

        Returns:
            Validated RangeTable

        Raises:
            ConsistencyError: two source ranges overlap
        """
        self.stats = BuilderStats()  # Reset stats
        drop = set(self.config.drop_codes)

        kept: List[RangeEntry] = []
        for entry in entries:
            self.stats.ranges_enumerated += 1
            if entry.country_code in drop:
                self.stats.ranges_dropped += 1
            else:
                kept.append(entry)

        # Enumeration order is already sorted except for re-based IPv4 blocks
        kept.sort(key=lambda entry: entry.start)

        merged: List[RangeEntry] = []
        for entry in kept:
            if merged:
                prev = merged[-1]
                if entry.start <= prev.end:
                    raise ConsistencyError(f"Source ranges overlap: {prev} and {entry}")
                if entry.start == prev.end + 1 and entry.country_code == prev.country_code:
                    merged[-1] = RangeEntry(prev.start, entry.end, prev.country_code)
                    self.stats.ranges_merged += 1
                    continue
            merged.append(entry)

        codes = {entry.country_code for entry in merged}
        table = RangeTable(
            merged,
            {code: name for code, name in (names or {}).items() if code in codes},
        )
        table.validate()

        self.stats.entries_emitted = len(table)
        self.stats.ipv4_entries = table.ipv4_count
        self.stats.ipv6_entries = len(table) - self.stats.ipv4_entries
        return table

    def verify(self, table: RangeTable, source: RangeSource) -> int:
        """
        Compare table lookups against the source at sampled addresses.

        For each sampled entry, checks its first and last address and the
        addresses just outside it, plus one random address anywhere in the
        address space.

        Args:
            table: Table built from source
            source: Ground truth

        Returns:
            Number of checks made

        Raises:
            ConsistencyError: the table and source disagree on a check
        """
        rng = random.Random(self.config.seed)
        count = min(self.config.verify_samples, len(table))
        indices = sorted(rng.sample(range(len(table)), count))

        checks = []
        for index in indices:
            entry = table[index]
            checks.extend((entry.start, entry.end))
            if entry.start > 0:
                checks.append(entry.start - 1)
            if entry.end < MAX_ADDRESS:
                checks.append(entry.end + 1)
        checks.extend(rng.randint(0, MAX_ADDRESS) for _ in range(count))

        drop = set(self.config.drop_codes)
        for value in checks:
            expected = source.lookup(value)
            if expected in drop:
                expected = None
            actual = table.lookup(value)
            if actual != expected:
                raise ConsistencyError(
                    f"Table lookup of {from_table_int(value)} gave {actual!r}, "
                    f"source gives {expected!r}"
                )

        self.stats.verification_checks += len(checks)
        return len(checks)


def build_from_source(
    source: RangeSource,
    config: Optional[BuilderConfig] = None,
) -> Tuple[RangeTable, BuilderStats]:
    """
    Convenience function to build and verify a table from a source.

    Args:
        source: Range source
        config: Builder configuration (defaults if omitted)

    Returns:
        Tuple of (RangeTable, BuilderStats)
    """
    builder = RangeTableBuilder(config)
    # Names are collected while ranges are decoded, so drain the ranges first
    entries = list(source.ranges())
    table = builder.build(entries, source.country_names())
    if builder.config.verify_samples > 0:
        builder.verify(table, source)
    return table, builder.stats
