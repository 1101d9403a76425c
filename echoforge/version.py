from __future__ import annotations

"""
echoforge.version - semantic version string with optional git-describe suffix.

Rules:
- BASE_VERSION is the release semver.
- If ECHOFORGE_VERSION is set in the environment, that wins.
- If we're inside a git checkout, append a PEP440 local suffix derived from
  `git describe --tags --dirty --always --abbrev=7`, e.g.:
    0.1.0+0.1.0.3.gabc1234          (3 commits after tag, clean)
    0.1.0+gabc1234.dirty            (no tag, dirty tree)
- If git is unavailable, fall back to BASE_VERSION.
"""


import os
import re
import subprocess
from typing import Optional

# Bump this on intentional releases.
BASE_VERSION = "0.1.0"


def _git_describe() -> Optional[str]:
    here = os.path.dirname(os.path.abspath(__file__))
    try:
        out = subprocess.check_output(
            ["git", "describe", "--tags", "--dirty", "--always", "--abbrev=7"],
            cwd=here,
            stderr=subprocess.DEVNULL,
        )
    except (OSError, subprocess.CalledProcessError):
        return None
    return out.decode("utf-8", "replace").strip() or None


_PEP440_LOCAL_CLEAN = re.compile(r"[^a-zA-Z0-9.]+")


def _pep440_local_from_describe(desc: str) -> str:
    """
    Convert a `git describe` string to a PEP440 local version suffix:
      - '-' and '+' become '.'
      - a leading 'v' before a digit is dropped
      - anything else outside [a-zA-Z0-9.] collapses to '.'
    """
    s = desc.replace("-", ".").replace("+", ".")
    if s.startswith("v") and len(s) > 1 and s[1].isdigit():
        s = s[1:]
    s = _PEP440_LOCAL_CLEAN.sub(".", s)
    s = re.sub(r"\.{2,}", ".", s).strip(".")
    if not s.lower().startswith(("git.", "g")) and not s[:1].isdigit():
        s = f"git.{s}"
    return s


def build_version() -> str:
    v = os.getenv("ECHOFORGE_VERSION")
    if v:
        return v
    desc = _git_describe()
    if not desc:
        return BASE_VERSION
    return f"{BASE_VERSION}+{_pep440_local_from_describe(desc)}"


__version__ = build_version()


def get_version() -> str:
    """Public helper returning the resolved version string."""
    return __version__


__all__ = ["__version__", "get_version", "BASE_VERSION"]
