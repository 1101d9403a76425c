"""
echoforge.cli
-------------

Typer application driving a ProtocolEngine persisted as a JSON snapshot.
The console script `echoforge` resolves to `echoforge.cli.main:app`.
"""

from .main import app, main

__all__ = ["app", "main"]
