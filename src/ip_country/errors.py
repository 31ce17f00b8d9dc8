"""
Error types raised while converting a country database.

Every error is fatal for a generation run. All of them derive from
ConversionError, which is a ValueError so callers that only care about
"bad input" can catch that.
"""


class ConversionError(ValueError):
    """Base class for all conversion failures."""


class DecodeError(ConversionError):
    """Malformed data: bad type tag, bad length, invalid UTF-8, pointer loop."""


class OutOfBounds(DecodeError):
    """An offset or length points outside the database buffer."""


class MissingMetadata(ConversionError):
    """The metadata block is absent, truncated or incomplete."""


class UnsupportedFormat(ConversionError):
    """The database uses a record size, IP version or format version we do not read."""


class MissingCountryCode(ConversionError):
    """A data record is reachable from the tree but carries no country code."""


class ConsistencyError(ConversionError):
    """The built table violates its ordering or overlap invariants."""
