"""
Range sources feeding the table builder.

A source produces RangeEntry objects and can answer point lookups, which
the builder uses to verify the finished table. Two sources exist:
MMDBSource for binary country databases and CSVSource for the DB-IP
country lite CSV export, read through DuckDB.
"""

from abc import ABC, abstractmethod
from bisect import bisect_right
from pathlib import Path
import gzip
import ipaddress
import shutil
import tempfile
from typing import Dict, Iterator, List, Optional, Tuple

import duckdb

from .addresses import Address, map_ipv4, to_table_int
from .database import CountryDatabase
from .errors import DecodeError, MissingCountryCode
from .ranges import RangeEntry, enumerate_ranges

GZIP_MAGIC = b"\x1f\x8b"


class RangeSource(ABC):
    """
    Abstract base class for range sources.

    A source is the ground truth the table is built from.
    """

    @property
    @abstractmethod
    def description(self) -> str:
        """Human readable description of the data, embedded in generated code."""

    @abstractmethod
    def ranges(self) -> Iterator[RangeEntry]:
        """Yield every covered range."""

    @abstractmethod
    def lookup(self, address: Address) -> Optional[str]:
        """Country code for one address, or None if uncovered."""

    def country_names(self) -> Dict[str, str]:
        """Mapping of country code to English name, where known."""
        return {}

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class MMDBSource(RangeSource):
    """Source backed by an in-memory MMDB country database."""

    def __init__(self, buffer: bytes):
        self.database = CountryDatabase(buffer)

    @property
    def description(self) -> str:
        return self.database.description

    def ranges(self) -> Iterator[RangeEntry]:
        return enumerate_ranges(self.database)

    def lookup(self, address: Address) -> Optional[str]:
        return self.database.lookup(address)

    def country_names(self) -> Dict[str, str]:
        return self.database.country_names()


class CSVSource(RangeSource):
    """
    Source backed by a DB-IP style CSV file.

    Each row is start_ip,end_ip,country_code with no header. Gzip
    compressed files are handled by DuckDB.

    Args:
        csv_path: Path to the .csv or .csv.gz file
    """

    def __init__(self, csv_path: Path):
        self._temp_dir: Optional[Path] = None
        self._con = None
        self._csv_path = Path(csv_path)
        self._label = f"CSV {self._csv_path.name}"
        if not self._csv_path.exists():
            raise FileNotFoundError(f"CSV file not found: {self._csv_path}")

        self._con = duckdb.connect(":memory:")
        self._entries: List[RangeEntry] = []
        self._starts: List[int] = []
        self._load_csv()

    @classmethod
    def from_bytes(cls, data: bytes) -> "CSVSource":
        """
        Create a source from raw CSV bytes (for example standard input).

        The bytes are written to a temporary directory that is removed on
        close().
        """
        temp_dir = Path(tempfile.mkdtemp())
        suffix = ".csv.gz" if data[:2] == GZIP_MAGIC else ".csv"
        csv_path = temp_dir / f"input{suffix}"
        csv_path.write_bytes(data)
        try:
            source = cls(csv_path)
        except BaseException:
            shutil.rmtree(temp_dir)
            raise
        source._temp_dir = temp_dir
        source._label = "CSV (standard input)"
        return source

    def _load_csv(self) -> None:
        """Load the CSV into DuckDB and convert rows to range entries."""
        if self._is_empty():
            self._con.execute("""
                CREATE TABLE csv_ranges (
                    line BIGINT, start_ip VARCHAR, end_ip VARCHAR, country_code VARCHAR
                )
            """)
        else:
            self._read_csv()

        rows = self._con.execute("""
            SELECT line, start_ip, end_ip, country_code
            FROM csv_ranges
            ORDER BY line
        """).fetchall()

        entries = [self._row_to_entry(*row) for row in rows]
        entries.sort(key=lambda entry: entry.start)
        self._entries = entries
        self._starts = [entry.start for entry in entries]

    def _is_empty(self) -> bool:
        """Check for a file with no CSV content, plain or gzip-compressed."""
        if self._csv_path.stat().st_size == 0:
            return True
        with open(self._csv_path, "rb") as f:
            if f.read(2) != GZIP_MAGIC:
                return False
        try:
            with gzip.open(self._csv_path, "rb") as f:
                return f.read(1) == b""
        except (OSError, EOFError) as e:
            raise DecodeError(f"Could not read CSV {self._csv_path}: {e}") from e

    def _read_csv(self) -> None:
        path = str(self._csv_path).replace("'", "''")
        try:
            self._con.execute(f"""
                CREATE TABLE csv_ranges AS
                SELECT row_number() OVER () AS line, start_ip, end_ip, country_code
                FROM read_csv('{path}',
                    header = false,
                    delim = ',',
                    quote = '"',
                    columns = {{
                        'start_ip': 'VARCHAR',
                        'end_ip': 'VARCHAR',
                        'country_code': 'VARCHAR'
                    }})
            """)
        except duckdb.Error as e:
            raise DecodeError(f"Could not read CSV {self._csv_path}: {e}") from e

    def _row_to_entry(
        self, line: int, start_ip: Optional[str], end_ip: Optional[str], code: Optional[str]
    ) -> RangeEntry:
        try:
            start = ipaddress.ip_address((start_ip or "").strip())
            end = ipaddress.ip_address((end_ip or "").strip())
        except ValueError as e:
            raise DecodeError(f"CSV row {line}: {e}") from e

        if start.version != end.version:
            raise DecodeError(
                f"CSV row {line}: range {start_ip}-{end_ip} mixes IPv4 and IPv6"
            )
        if int(start) > int(end):
            raise DecodeError(f"CSV row {line}: start {start_ip} is after end {end_ip}")

        code = (code or "").strip()
        if len(code) != 2 or not code.isalpha() or not code.isascii():
            raise MissingCountryCode(
                f"CSV row {line}: country code {code!r}, expected a two-letter code"
            )

        if start.version == 4:
            return RangeEntry(map_ipv4(int(start)), map_ipv4(int(end)), code.upper())
        return RangeEntry(int(start), int(end), code.upper())

    @property
    def description(self) -> str:
        return self._label

    @property
    def row_count(self) -> int:
        return len(self._entries)

    def ranges(self) -> Iterator[RangeEntry]:
        return iter(self._entries)

    def lookup(self, address: Address) -> Optional[str]:
        value = to_table_int(address)
        index = bisect_right(self._starts, value) - 1
        if index >= 0 and self._entries[index].contains(value):
            return self._entries[index].country_code
        return None

    def country_counts(self) -> List[Tuple[str, int]]:
        """Number of CSV rows per country code, most frequent first."""
        return self._con.execute("""
            SELECT upper(trim(country_code)) AS code, count(*) AS n
            FROM csv_ranges
            GROUP BY code
            ORDER BY n DESC, code
        """).fetchall()

    def close(self) -> None:
        """Close the DuckDB connection and clean up temporary files."""
        if self._con:
            self._con.close()
            self._con = None

        if self._temp_dir and self._temp_dir.exists():
            shutil.rmtree(self._temp_dir)
            self._temp_dir = None

    def __del__(self):
        """Cleanup on garbage collection."""
        self.close()
