from __future__ import annotations

"""
echoforge.rpc.server
--------------------

Standalone FastAPI application around one ProtocolEngine:

  - POST /rpc           JSON-RPC 2.0 (single or batch) over `make_methods`
  - /echo/...           REST router (see echoforge.rpc.methods)
  - /echo/metrics       Prometheus exposition
  - /healthz, /version

Run with `echoforge serve` or `python -m echoforge serve`.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from echoforge.engine import ProtocolEngine
from echoforge.errors import EchoForgeError
from echoforge.version import __version__

from . import RPC_PREFIX
from .methods import make_methods
from .models import JsonRpcError, JsonRpcRequest, JsonRpcResponse
from .mount import mount_echoforge

log = logging.getLogger(__name__)

# JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
# Application range (-32000..-32099): domain errors carry their to_dict() as data.
DOMAIN_ERROR = -32000


def _error(id_: Any, code: int, message: str, data: Optional[Any] = None) -> Dict[str, Any]:
    return JsonRpcResponse(id=id_, error=JsonRpcError(code=code, message=message, data=data)).envelope()


def dispatch(methods: Mapping[str, Callable[..., Any]], req: Any) -> Optional[Dict[str, Any]]:
    """
    Execute one JSON-RPC request object. Returns the response object, or None
    for a notification (no "id").
    """
    try:
        call = JsonRpcRequest.model_validate(req)
    except ValidationError:
        return _error(None, INVALID_REQUEST, "Invalid Request")
    id_ = call.id
    is_notification = "id" not in req
    fn = methods.get(call.method)
    if fn is None:
        return None if is_notification else _error(id_, METHOD_NOT_FOUND, "Method not found")

    params = call.params if call.params is not None else {}
    if not isinstance(params, dict):
        return None if is_notification else _error(id_, INVALID_PARAMS, "params must be an object")

    try:
        result = fn(**params)
    except EchoForgeError as e:
        if is_notification:
            return None
        return _error(id_, DOMAIN_ERROR, e.message, e.to_dict())
    except TypeError as e:
        if is_notification:
            return None
        return _error(id_, INVALID_PARAMS, "Invalid params", str(e))
    except Exception:
        log.exception("json-rpc method failed", extra={"method": call.method})
        if is_notification:
            return None
        return _error(id_, INTERNAL_ERROR, "Internal error")
    if is_notification:
        return None
    return JsonRpcResponse(id=id_, result=result).envelope()


def create_app(engine: Optional[ProtocolEngine] = None, *, prefix: str = RPC_PREFIX) -> FastAPI:
    """Build the FastAPI app serving `engine` (a fresh one when omitted)."""
    engine = engine or ProtocolEngine()
    methods = make_methods(engine)

    app = FastAPI(title="EchoForge", version=__version__)
    app.state.engine = engine

    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return {"ok": True, "epoch": engine.current_epoch()}

    @app.get("/version")
    def version() -> Dict[str, str]:
        return {"version": __version__}

    @app.post("/rpc")
    async def rpc(request: Request) -> Any:
        try:
            body = await request.json()
        except ValueError:
            return JSONResponse(_error(None, PARSE_ERROR, "Parse error"))

        if isinstance(body, list):
            if not body:
                return JSONResponse(_error(None, INVALID_REQUEST, "Invalid Request"))
            out: List[Dict[str, Any]] = [r for r in (dispatch(methods, item) for item in body) if r is not None]
            if not out:
                return Response(status_code=204)
            return JSONResponse(out)

        resp: Union[Dict[str, Any], None] = dispatch(methods, body)
        if resp is None:
            return Response(status_code=204)
        return JSONResponse(resp)

    mount_echoforge(app, engine, prefix=prefix)
    return app


__all__ = ["create_app", "dispatch"]
