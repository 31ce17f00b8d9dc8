"""
Country database over an in-memory MMDB buffer.

Combines the reader, metadata, search tree and data decoder, and knows
where country records keep their two-letter code.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .addresses import Address, IPV4_BITS, IPV6_BITS, is_ipv4_mapped, to_table_int
from .decoder import Decoder
from .errors import MissingCountryCode
from .metadata import Metadata, read_metadata
from .reader import BinaryReader
from .tree import DataOffset, SearchTree

# Record keys holding the country, in order of preference
COUNTRY_KEYS = ("country", "registered_country")

NAME_LANGUAGE = "en"


@dataclass(frozen=True)
class Country:
    """Country found in a data record."""
    code: str
    name: Optional[str] = None


def extract_country(record: Any, offset: int) -> Country:
    """
    Pull the country out of a decoded data record.

    Args:
        record: Decoded record, expected to be a map
        offset: Absolute offset of the record, for error messages

    Returns:
        Country with an upper-case ISO 3166-1 alpha-2 code

    Raises:
        MissingCountryCode: no usable iso_code under any country key
    """
    if not isinstance(record, dict):
        raise MissingCountryCode(
            f"Record at offset {offset} is a {type(record).__name__}, expected a map"
        )

    for key in COUNTRY_KEYS:
        country = record.get(key)
        if not isinstance(country, dict) or "iso_code" not in country:
            continue

        code = country["iso_code"]
        if not isinstance(code, str) or len(code) != 2 or not code.isalpha() or not code.isascii():
            raise MissingCountryCode(
                f"Record at offset {offset} has {key}.iso_code {code!r}, "
                f"expected a two-letter code"
            )

        names = country.get("names")
        name = names.get(NAME_LANGUAGE) if isinstance(names, dict) else None
        return Country(code.upper(), name if isinstance(name, str) else None)

    raise MissingCountryCode(
        f"Record at offset {offset} has no country.iso_code or registered_country.iso_code"
    )


class CountryDatabase:
    """
    Read-only view of a country database.

    Args:
        buffer: The complete database file contents
    """

    def __init__(self, buffer: bytes):
        self.reader = BinaryReader(buffer)
        self.metadata: Metadata = read_metadata(self.reader)
        self.tree = SearchTree(self.reader, self.metadata)
        self.decoder = Decoder(self.reader, pointer_base=self.metadata.data_section_start)
        self._countries: Dict[int, Country] = {}

    @classmethod
    def from_file(cls, path) -> "CountryDatabase":
        with open(path, "rb") as f:
            return cls(f.read())

    @property
    def description(self) -> str:
        meta = self.metadata
        text = meta.database_type or "MMDB"
        return f"{text} (build epoch {meta.build_epoch})"

    def country_at(self, record: DataOffset) -> Country:
        """Decode (and cache) the country for a data record of the tree."""
        offset = self.tree.resolve_data_offset(record)
        country = self._countries.get(offset)
        if country is None:
            country = extract_country(self.decoder.decode_value(offset), offset)
            self._countries[offset] = country
        return country

    def country_names(self) -> Dict[str, str]:
        """English names of the countries decoded so far, keyed by code."""
        names: Dict[str, str] = {}
        for country in self._countries.values():
            if country.name and country.code not in names:
                names[country.code] = country.name
        return dict(sorted(names.items()))

    def record_for(self, address: Address) -> Optional[Any]:
        """Full decoded data record for an address, or None."""
        record = self._find(address)
        if record is None:
            return None
        return self.decoder.decode_value(self.tree.resolve_data_offset(record))

    def lookup(self, address: Address) -> Optional[str]:
        """
        Point lookup of an address by walking the tree.

        Args:
            address: Address string, ipaddress object or 128-bit table int

        Returns:
            Two-letter country code, or None when the address has no data
        """
        record = self._find(address)
        if record is None:
            return None
        return self.country_at(record).code

    def _find(self, address: Address) -> Optional[DataOffset]:
        # IPv4 data of an IPv6 tree is only reachable through the mapped
        # block; ::/96 and the alias paths into the IPv4 subtree have no
        # data of their own. This matches what enumerate_ranges() emits.
        value = to_table_int(address)
        tree = self.tree
        ipv4_start = tree.ipv4_start_node

        if tree.depth == IPV4_BITS:
            if not is_ipv4_mapped(value):
                return None
            record, _ = tree.walk(value & 0xFFFFFFFF, IPV4_BITS)
        elif is_ipv4_mapped(value) and ipv4_start is not None:
            record, _ = tree.walk(value & 0xFFFFFFFF, IPV4_BITS, node=ipv4_start)
        else:
            record, _ = tree.walk(value, IPV6_BITS, avoid=ipv4_start)

        return record if isinstance(record, DataOffset) else None
