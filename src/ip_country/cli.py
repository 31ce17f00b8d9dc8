"""
Command-line interface for ip-country.

Provides commands for generating lookup tables from a country database,
looking up addresses directly in a database, and printing statistics.
Generated code goes to standard output unless -o is given, so progress
messages are printed to standard error.
"""

import argparse
import gzip
import sys
import zlib
from pathlib import Path
from typing import Optional

from .builder import BuilderConfig, build_from_source
from .codegen import FORMATS, generate_source
from .errors import DecodeError
from .sources import GZIP_MAGIC, CSVSource, MMDBSource, RangeSource


def _log(message: str = "") -> None:
    print(message, file=sys.stderr)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="ip-country",
        description="Generate embeddable IP-to-country lookup tables",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Build command
    build_parser = subparsers.add_parser(
        "build",
        help="Generate a lookup table from a country database",
    )
    _add_input_arguments(build_parser)
    build_parser.add_argument(
        "-o", "--output",
        type=Path,
        help="Output file path (default: standard output)",
    )
    build_parser.add_argument(
        "-f", "--format",
        choices=FORMATS,
        default="python",
        help="Generated language (default: python)",
    )
    build_parser.add_argument(
        "--namespace",
        type=str,
        default="ip_country",
        help="C++ namespace for --format cpp (default: ip_country)",
    )
    build_parser.add_argument(
        "--drop-code",
        action="append",
        metavar="CODE",
        help="Country code meaning 'unknown', left out of the table (default: ZZ)",
    )
    build_parser.add_argument(
        "--keep-unknown",
        action="store_true",
        help="Keep ranges of every country code, including ZZ",
    )
    build_parser.add_argument(
        "--verify-samples",
        type=int,
        default=256,
        help="Table entries to cross-check against the database (default: 256, 0 disables)",
    )
    build_parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed for verification sampling (default: 42)",
    )

    # Lookup command
    lookup_parser = subparsers.add_parser(
        "lookup",
        help="Look up addresses directly in a country database",
    )
    _add_input_arguments(lookup_parser)
    lookup_parser.add_argument(
        "addresses",
        nargs="+",
        metavar="ADDRESS",
        help="IPv4 or IPv6 addresses",
    )

    # Stats command
    stats_parser = subparsers.add_parser(
        "stats",
        help="Show database and table statistics",
    )
    _add_input_arguments(stats_parser)

    return parser


def _add_input_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-i", "--input",
        type=Path,
        help="Database file, optionally gzip-compressed (default: standard input)",
    )
    parser.add_argument(
        "--csv",
        action="store_true",
        help="Input is a DB-IP style CSV (start_ip,end_ip,country) instead of MMDB",
    )


def _read_input(path: Optional[Path]) -> bytes:
    if path is None or str(path) == "-":
        return sys.stdin.buffer.read()
    return path.read_bytes()


def open_source(input_path: Optional[Path], csv: bool) -> RangeSource:
    """
    Open the database named on the command line.

    Args:
        input_path: File to read, or None for standard input
        csv: Whether the input is CSV rather than MMDB

    Returns:
        RangeSource for the input
    """
    if csv:
        if input_path is None or str(input_path) == "-":
            return CSVSource.from_bytes(_read_input(None))
        return CSVSource(input_path)

    data = _read_input(input_path)
    if data[:2] == GZIP_MAGIC:
        try:
            data = gzip.decompress(data)
        except (EOFError, zlib.error) as e:
            raise DecodeError(f"Input is not a valid gzip stream: {e}") from e
    return MMDBSource(data)


def cmd_build(args: argparse.Namespace) -> int:
    """Handle the build command."""
    kind = "CSV" if args.csv else "MMDB"
    _log(f"Reading {kind} database from {args.input or 'standard input'}...")

    try:
        if args.keep_unknown:
            drop_codes = ()
        else:
            drop_codes = tuple(args.drop_code or ("ZZ",))
        config = BuilderConfig(
            drop_codes=drop_codes,
            verify_samples=args.verify_samples,
            seed=args.seed,
        )

        with open_source(args.input, args.csv) as source:
            _log("Building range table...")
            table, stats = build_from_source(source, config)
            description = source.description
    except (ValueError, OSError) as e:
        _log(f"Error: {e}")
        return 1

    # Print stats
    _log("\nBuild statistics:")
    _log(f"  Source: {description}")
    _log(f"  Ranges enumerated: {stats.ranges_enumerated}")
    _log(f"  Ranges dropped: {stats.ranges_dropped}")
    _log(f"  Ranges merged: {stats.ranges_merged}")
    _log(f"  Table entries: {stats.entries_emitted}")
    _log(f"  IPv4 entries: {stats.ipv4_entries}")
    _log(f"  IPv6 entries: {stats.ipv6_entries}")
    _log(f"  Verification checks: {stats.verification_checks}")

    _log(f"\nGenerating {args.format} source...")
    code = generate_source(table, args.format, description, args.namespace)

    if args.output:
        args.output.write_text(code, encoding="utf-8")
        _log(f"Wrote {len(code)} bytes to {args.output}")
    else:
        sys.stdout.write(code)
        sys.stdout.flush()

    return 0


def cmd_lookup(args: argparse.Namespace) -> int:
    """Handle the lookup command."""
    try:
        with open_source(args.input, args.csv) as source:
            for address in args.addresses:
                code = source.lookup(address)
                print(f"{address}\t{code or '-'}")
    except (ValueError, OSError) as e:
        _log(f"Error: {e}")
        return 1

    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Handle the stats command."""
    try:
        with open_source(args.input, args.csv) as source:
            if isinstance(source, MMDBSource):
                meta = source.database.metadata
                print("Database metadata:")
                print(f"  Type: {meta.database_type or '(none)'}")
                print(f"  Format version: {meta.binary_format_major_version}.{meta.binary_format_minor_version}")
                print(f"  Build epoch: {meta.build_epoch}")
                print(f"  IP version: {meta.ip_version}")
                print(f"  Record size: {meta.record_size} bits")
                print(f"  Node count: {meta.node_count:,}")
                print(f"  Search tree size: {meta.search_tree_size:,} bytes")
                print(f"  Languages: {', '.join(meta.languages) or '(none)'}")
            else:
                print("CSV statistics:")
                print(f"  Rows: {source.row_count:,}")
                top = ", ".join(f"{code} ({n})" for code, n in source.country_counts()[:10])
                print(f"  Most rows: {top or '(none)'}")

            table, stats = build_from_source(source, BuilderConfig(verify_samples=0))
    except (ValueError, OSError) as e:
        _log(f"Error: {e}")
        return 1

    print("Range table:")
    print(f"  Ranges enumerated: {stats.ranges_enumerated:,}")
    print(f"  Table entries: {len(table):,}")
    print(f"  IPv4 entries: {stats.ipv4_entries:,}")
    print(f"  IPv6 entries: {stats.ipv6_entries:,}")
    print(f"  Countries: {len(table.country_codes())}")

    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == "build":
        return cmd_build(args)
    elif args.command == "lookup":
        return cmd_lookup(args)
    elif args.command == "stats":
        return cmd_stats(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
