from __future__ import annotations
"""
EchoForge - protocol economic engine.

A deterministic, integer-only model of a treasury-backed reserve token:
bonding-curve issuance, index-based rebasing stakes, penalty-weighted unstake
cooldowns with a daily redemption window, and a bounded-depth referral
distributor, all composed by `echoforge.engine.ProtocolEngine` under a single
exclusive lock. Submodules are lazily imported to keep import time minimal.

Public surface (lazily loaded):
- config, errors, fixedpoint, types, metrics, logging
- treasury, bonding, staking, referral, supply
- engine, rpc, cli
"""


from typing import List

from .version import __version__

__all__: List[str] = [
    "__version__",
    # lazily importable subpackages/modules
    "config",
    "errors",
    "fixedpoint",
    "types",
    "metrics",
    "logging",
    "treasury",
    "bonding",
    "staking",
    "referral",
    "supply",
    "engine",
    "rpc",
    "cli",
]

# --- Lazy module loader (PEP 562) -------------------------------------------------
import importlib

_lazy_modules = set(__all__) - {"__version__"}


def __getattr__(name: str):
    if name in _lazy_modules:
        return importlib.import_module(f".{name}", __name__)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(set(globals().keys()) | _lazy_modules)


def get_version() -> str:
    """Return the EchoForge package version string."""
    return __version__
