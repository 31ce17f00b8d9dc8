"""
ip-country: embeddable IP-to-country lookup table generator.

This package reads a MaxMind-format country database (such as DB-IP's
country lite database), collapses its search tree into a minimal sorted
range table, and generates source code that embeds the table together
with a binary-search lookup routine.
"""

__version__ = "0.1.0"

from .errors import (
    ConversionError,
    DecodeError,
    OutOfBounds,
    MissingMetadata,
    UnsupportedFormat,
    MissingCountryCode,
    ConsistencyError,
)
from .reader import BinaryReader
from .decoder import Decoder
from .metadata import Metadata, read_metadata
from .tree import SearchTree, ChildNode, DataOffset, NO_DATA
from .database import CountryDatabase, Country
from .ranges import RangeEntry, enumerate_ranges
from .lookup import RangeTable
from .sources import RangeSource, MMDBSource, CSVSource
from .builder import RangeTableBuilder, BuilderConfig, BuilderStats, build_from_source
from .codegen import generate_python_module, generate_cpp_header, generate_source

__all__ = [
    "ConversionError",
    "DecodeError",
    "OutOfBounds",
    "MissingMetadata",
    "UnsupportedFormat",
    "MissingCountryCode",
    "ConsistencyError",
    "BinaryReader",
    "Decoder",
    "Metadata",
    "read_metadata",
    "SearchTree",
    "ChildNode",
    "DataOffset",
    "NO_DATA",
    "CountryDatabase",
    "Country",
    "RangeEntry",
    "enumerate_ranges",
    "RangeTable",
    "RangeSource",
    "MMDBSource",
    "CSVSource",
    "RangeTableBuilder",
    "BuilderConfig",
    "BuilderStats",
    "build_from_source",
    "generate_python_module",
    "generate_cpp_header",
    "generate_source",
]
