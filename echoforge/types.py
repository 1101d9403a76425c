from __future__ import annotations

"""
Shared primitive types for EchoForge.

- Address: opaque fixed-length account identifier (0x + 40 hex chars),
  normalised to lower case.
- AssetKind: the asset classes the treasury can hold.
- Amount / Epoch aliases for readability in signatures.
"""

import re
from enum import Enum
from typing import Any, NewType, Optional

from .errors import InvalidAddress

Amount = int
Epoch = int
Address = NewType("Address", str)

ZERO_ADDRESS = Address("0x" + "0" * 40)

_ADDR_RE = re.compile(r"^0x[0-9a-f]{40}$")


def normalize_address(value: Any) -> Address:
    """Validate and lower-case an account identifier."""
    if not isinstance(value, str):
        raise InvalidAddress(value)
    s = value.strip().lower()
    if not _ADDR_RE.match(s):
        raise InvalidAddress(value)
    return Address(s)


def optional_sponsor(value: Any) -> Optional[Address]:
    """None / "" / the zero address all mean "no sponsor"."""
    if value is None or value == "":
        return None
    addr = normalize_address(value)
    return None if addr == ZERO_ADDRESS else addr


class AssetKind(str, Enum):
    NATIVE = "native"
    STABLE = "stable"
    YIELD_BEARING = "yield_bearing"
    PROTOCOL_TOKEN = "protocol_token"

    @property
    def liquid(self) -> bool:
        # Yield positions are locked in external strategies.
        return self is not AssetKind.YIELD_BEARING

    @classmethod
    def parse(cls, value: Any) -> "AssetKind":
        if isinstance(value, AssetKind):
            return value
        try:
            return cls(str(value).strip().lower().replace("-", "_"))
        except ValueError as e:
            allowed = ", ".join(k.value for k in cls)
            raise ValueError(f"unknown asset kind {value!r}, allowed: {allowed}") from e


__all__ = [
    "Amount",
    "Epoch",
    "Address",
    "ZERO_ADDRESS",
    "normalize_address",
    "optional_sponsor",
    "AssetKind",
]
