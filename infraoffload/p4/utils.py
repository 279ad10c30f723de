"""Byte packing helpers, action kinds and the group id generator."""

from __future__ import annotations

import enum
import ipaddress
import struct
import threading
from typing import Union

MAX_UINT32 = 0xFFFFFFFF

_Address = Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address, None]


class InterfaceType(enum.IntEnum):
    """Kind of interface a set of forwarding rules is programmed for."""

    HOST = 0
    PROXY = 1
    ENDPOINT = 2
    EXCEPTION = 3


class Action(enum.IntEnum):
    """What a table operation does with its entries."""

    INSERT = 0
    DELETE = 1
    UPDATE = 2


class UUIDGenerator:
    """Hands out ids from 1 to MAX_UINT32, wrapping back to 1."""

    def __init__(self) -> None:
        self._current = 0
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            self._current = 1 if self._current == MAX_UINT32 else self._current + 1
            return self._current

    def __iter__(self) -> "UUIDGenerator":
        return self

    def __next__(self) -> int:
        return self.next_id()


def value_to_bytes(value: int) -> bytes:
    """Pack an unsigned 32-bit value big-endian."""
    try:
        return struct.pack(">I", value)
    except struct.error as exc:
        raise ValueError(f"{value} does not fit in 32 bits") from exc


def value_to_bytes16(value: int) -> bytes:
    """Pack an unsigned 16-bit value big-endian."""
    try:
        return struct.pack(">H", value)
    except struct.error as exc:
        raise ValueError(f"{value} does not fit in 16 bits") from exc


def ip4_to_int(address: _Address) -> int:
    """Return an IPv4 address as an integer; anything else gives 0."""
    if isinstance(address, str):
        if "%" in address:
            return 0
        try:
            address = ipaddress.ip_address(address)
        except ValueError:
            return 0
    if address is None:
        return 0
    if isinstance(address, ipaddress.IPv6Address):
        mapped = address.ipv4_mapped
        if mapped is None:
            return 0
        address = mapped
    return int(address)


def pack32_binary_ip4(address: _Address) -> bytes:
    """Return the four network-order bytes of an IPv4 address (zeros if invalid)."""
    return struct.pack(">I", ip4_to_int(address))