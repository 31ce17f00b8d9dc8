"""
Runtime lookup over a finished range table.

The table is immutable once built, so a RangeTable can be shared between
threads without locking.
"""

from bisect import bisect_right
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .addresses import Address, to_table_int
from .errors import ConsistencyError
from .ranges import RangeEntry


class RangeTable:
    """
    Sorted, non-overlapping ranges with binary-search lookup.

    Args:
        entries: Range entries, sorted by start
        names: Optional mapping of country code to country name
    """

    def __init__(self, entries: Iterable[RangeEntry], names: Optional[Dict[str, str]] = None):
        self._entries: Tuple[RangeEntry, ...] = tuple(entries)
        self._starts: List[int] = [entry.start for entry in self._entries]
        self.names: Dict[str, str] = dict(names or {})

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[RangeEntry]:
        return iter(self._entries)

    def __getitem__(self, index: int) -> RangeEntry:
        return self._entries[index]

    @property
    def entries(self) -> Sequence[RangeEntry]:
        return self._entries

    def find(self, address: Address) -> Optional[RangeEntry]:
        """Return the entry containing address, or None."""
        value = to_table_int(address)
        index = bisect_right(self._starts, value) - 1
        if index >= 0 and value <= self._entries[index].end:
            return self._entries[index]
        return None

    def lookup(self, address: Address) -> Optional[str]:
        """
        Look up the country code of an address.

        Args:
            address: Address string, ipaddress object, or 128-bit table int

        Returns:
            Two-letter country code, or None when no range contains it
        """
        entry = self.find(address)
        return entry.country_code if entry is not None else None

    def lookup_name(self, address: Address) -> Optional[str]:
        code = self.lookup(address)
        return self.names.get(code) if code is not None else None

    @property
    def ipv4_count(self) -> int:
        return sum(1 for entry in self._entries if entry.is_ipv4)

    @property
    def ipv6_count(self) -> int:
        return len(self._entries) - self.ipv4_count

    def country_codes(self) -> List[str]:
        """Distinct country codes in the table, sorted."""
        return sorted({entry.country_code for entry in self._entries})

    def validate(self) -> None:
        """
        Check the table invariants.

        Raises:
            ConsistencyError: entries out of order, overlapping, or two
                adjacent entries that should have been merged
        """
        for prev, entry in zip(self._entries, self._entries[1:]):
            if entry.start <= prev.end:
                raise ConsistencyError(f"Entries overlap or are unsorted: {prev} and {entry}")
            if entry.start == prev.end + 1 and entry.country_code == prev.country_code:
                raise ConsistencyError(f"Adjacent entries were not merged: {prev} and {entry}")
