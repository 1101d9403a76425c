from __future__ import annotations

"""
echoforge.rpc
-------------

JSON-RPC method table and FastAPI REST router over a ProtocolEngine.

  • methods.make_methods      name → callable, JSON-safe results
  • methods.build_rest_router GET queries / POST commands
  • mount.mount_echoforge     include the router into an app
  • mount.register_jsonrpc    register the method table on a dispatcher
  • models.JsonRpcRequest     pydantic JSON-RPC 2.0 envelopes
  • server.create_app         standalone app: JSON-RPC at /rpc plus the router
"""

from typing import Dict, Final

# Base path under which EchoForge endpoints are mounted.
RPC_PREFIX: Final[str] = "/echo"

ECHO_OPENAPI_TAG: Final[Dict[str, str]] = {
    "name": "echoforge",
    "description": "Bonding curve, staking, unstake queue, referral and treasury views.",
}

__all__ = [
    "RPC_PREFIX",
    "ECHO_OPENAPI_TAG",
]
