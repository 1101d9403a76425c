"""
JSON-RPC 2.0 envelopes accepted and returned by echoforge.rpc.server.

Method results themselves are plain dicts built by `make_methods`; only the
envelope is typed here so malformed requests are rejected before dispatch.
"""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator


class JsonRpcRequest(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", str_max_length=1_000_000)
    jsonrpc: Literal["2.0"]
    method: str
    params: Optional[Union[list[Any], dict[str, Any]]] = None
    id: Optional[Union[int, str]] = None

    @field_validator("method")
    @classmethod
    def _method_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("method must be a non-empty string")
        return v


class JsonRpcError(BaseModel):
    model_config = ConfigDict(frozen=True)
    code: int
    message: str
    data: Optional[Any] = None


class JsonRpcResponse(BaseModel):
    model_config = ConfigDict(frozen=True)
    jsonrpc: Literal["2.0"] = "2.0"
    result: Optional[Any] = None
    error: Optional[JsonRpcError] = None
    id: Optional[Union[int, str]] = None

    def envelope(self) -> Dict[str, Any]:
        """Wire form: exactly one of result / error, `id` always present."""
        out: Dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            out["error"] = self.error.model_dump(exclude_none=True)
        else:
            out["result"] = self.result
        return out


__all__ = ["JsonRpcRequest", "JsonRpcError", "JsonRpcResponse"]
