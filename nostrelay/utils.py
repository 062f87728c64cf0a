"""Common utility functions."""

from __future__ import annotations

import time
from urllib.parse import urlsplit

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_LOWER_HEX_DIGITS = frozenset("0123456789abcdef")

_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32_VALUES = {c: i for i, c in enumerate(_BECH32_CHARSET)}
_BECH32_CONST = 1
_BECH32M_CONST = 0x2BC830A3
_GENERATORS = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)


class Bech32Error(ValueError):
    """A string could not be decoded as bech32 data."""


def unix_time() -> int:
    """Seconds since 1970."""
    return max(int(time.time()), 0)


def is_hex(s: str) -> bool:
    """Check if a string contains only hex characters."""
    return all(c in _HEX_DIGITS for c in s)


def is_nip19(s: str) -> bool:
    """Check if a string looks like a NIP-19 key or note identifier."""
    return s.startswith(("npub", "note"))


def is_lower_hex(s: str) -> bool:
    """Check if a string contains only lower-case hex characters."""
    return all(c in _LOWER_HEX_DIGITS for c in s)


def host_str(url: str) -> str | None:
    """Return the host part of a URL, or None if there is none."""
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError:
        return None
    if not parts.scheme or not host:
        return None
    if ":" in host:
        return f"[{host}]"
    return host


def _polymod(values: list[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = ((chk & 0x1FFFFFF) << 5) ^ value
        for shift, generator in enumerate(_GENERATORS):
            if (top >> shift) & 1:
                chk ^= generator
    return chk


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _bech32_decode(s: str) -> tuple[str, list[int]]:
    if len(s) < 8:
        raise Bech32Error("invalid length")
    if any(ord(c) < 33 or ord(c) > 126 for c in s):
        raise Bech32Error("invalid character")
    if s.lower() != s and s.upper() != s:
        raise Bech32Error("mixed case")
    s = s.lower()
    pos = s.rfind("1")
    if pos < 1:
        raise Bech32Error("missing separator or empty human-readable part")
    if len(s) - pos - 1 < 6:
        raise Bech32Error("invalid length")
    hrp = s[:pos]
    try:
        data = [_BECH32_VALUES[c] for c in s[pos + 1:]]
    except KeyError as exc:
        raise Bech32Error(f"invalid character {exc.args[0]!r}") from None
    if _polymod(_hrp_expand(hrp) + data) not in (_BECH32_CONST, _BECH32M_CONST):
        raise Bech32Error("invalid checksum")
    return hrp, data[:-6]


def _from_base32(data: list[int]) -> bytes:
    acc = 0
    bits = 0
    out = bytearray()
    for value in data:
        acc = ((acc << 5) | value) & 0xFFF
        bits += 5
        while bits >= 8:
            bits -= 8
            out.append((acc >> bits) & 0xFF)
    if bits >= 5 or (acc << (8 - bits)) & 0xFF:
        raise Bech32Error("invalid padding")
    return bytes(out)


def nip19_to_hex(s: str) -> str:
    """Decode a bech32 (NIP-19) string into the hex form of its payload."""
    _hrp, data = _bech32_decode(s)
    return _from_base32(data).hex()