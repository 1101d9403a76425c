from __future__ import annotations

"""
echoforge.rpc.mount
-------------------

Helpers to mount the EchoForge RPC surface into an existing FastAPI app and/or
to register the JSON-RPC methods with your dispatcher.

Typical usage (REST):
    from fastapi import FastAPI
    from echoforge.engine import ProtocolEngine
    from echoforge.rpc.mount import mount_echoforge
    app = FastAPI()
    mount_echoforge(app, ProtocolEngine(), prefix="/echo")

Typical usage (JSON-RPC):
    from echoforge.rpc.mount import register_jsonrpc
    register_jsonrpc(dispatcher, engine)

No hard dependency on a specific JSON-RPC framework: we only expect a
dispatcher with a `.add(name, callable)` or `.register(name, callable)` API.
"""

from typing import Any, Dict, Protocol

from echoforge.engine import ProtocolEngine

from . import ECHO_OPENAPI_TAG, RPC_PREFIX
from .methods import build_rest_router, make_methods


class _JsonRpcDispatcherLike(Protocol):
    """Minimal protocol to support common JSON-RPC dispatchers."""
    def add(self, method: str, func: Any) -> None: ...
    def register(self, method: str, func: Any) -> None: ...


def mount_echoforge(
    app: Any,
    engine: ProtocolEngine,
    *,
    prefix: str = RPC_PREFIX,
    metrics_path: str | None = "/metrics",
) -> None:
    """
    Mount the EchoForge REST endpoints under `prefix` on a FastAPI app, plus a
    Prometheus endpoint at `prefix + metrics_path` unless `metrics_path` is None.
    """
    router = build_rest_router(engine)
    app.include_router(router, prefix=prefix, tags=[ECHO_OPENAPI_TAG["name"]])
    if metrics_path:
        from echoforge.metrics import mount_fastapi

        mount_fastapi(app, path=f"{prefix}{metrics_path}")


def register_jsonrpc(dispatcher: _JsonRpcDispatcherLike, engine: ProtocolEngine) -> Dict[str, Any]:
    """
    Register JSON-RPC methods on a dispatcher.

    We try `.add(name, fn)` first and fall back to `.register(name, fn)`.
    Returns the registered method table.
    """
    methods = make_methods(engine)
    for name, fn in methods.items():
        add = getattr(dispatcher, "add", None)
        if callable(add):
            add(name, fn)
        else:
            dispatcher.register(name, fn)
    return methods


__all__ = ["mount_echoforge", "register_jsonrpc"]
