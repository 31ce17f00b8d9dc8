"""
Address normalization between ipaddress objects and the 128-bit table space.

The range table stores every address as an unsigned 128-bit integer.
IPv4 addresses live in the IPv4-mapped block ::ffff:0:0/96, so
1.2.3.4 is stored as 0x00000000000000000000ffff01020304.
"""

import ipaddress
from typing import Union

Address = Union[str, int, ipaddress.IPv4Address, ipaddress.IPv6Address]

IPV6_BITS = 128
IPV4_BITS = 32

MAX_ADDRESS = (1 << IPV6_BITS) - 1
IPV4_MAPPED_BASE = 0xFFFF << IPV4_BITS
IPV4_MAPPED_LAST = IPV4_MAPPED_BASE | 0xFFFFFFFF


def map_ipv4(value: int) -> int:
    """Shift a 32-bit IPv4 value into the IPv4-mapped block."""
    return IPV4_MAPPED_BASE | value


def is_ipv4_mapped(value: int) -> bool:
    return IPV4_MAPPED_BASE <= value <= IPV4_MAPPED_LAST


def to_table_int(address: Address) -> int:
    """
    Normalize an address to the 128-bit table representation.

    Args:
        address: Dotted/colon string, ipaddress object, or an int that is
            already a 128-bit table value

    Returns:
        Integer in [0, 2**128)
    """
    if isinstance(address, bool):
        raise TypeError("Booleans are not addresses")
    if isinstance(address, int):
        if not 0 <= address <= MAX_ADDRESS:
            raise ValueError(f"Address value {address} outside 128-bit range")
        return address
    if isinstance(address, str):
        address = ipaddress.ip_address(address.strip())
    if isinstance(address, ipaddress.IPv4Address):
        return map_ipv4(int(address))
    if isinstance(address, ipaddress.IPv6Address):
        return int(address)
    raise TypeError(f"Unsupported address type: {type(address).__name__}")


def from_table_int(value: int) -> Union[ipaddress.IPv4Address, ipaddress.IPv6Address]:
    """Inverse of to_table_int; IPv4-mapped values come back as IPv4Address."""
    if is_ipv4_mapped(value):
        return ipaddress.IPv4Address(value & 0xFFFFFFFF)
    return ipaddress.IPv6Address(value)
