from __future__ import annotations
# echoforge/errors.py
"""
Error types for the EchoForge protocol engine. These are lightweight,
serializable, and safe to surface over RPC/logs.

Two flags classify every error:
  - retryable: an expected operational state (cooldown running, redemption
    window exhausted). The caller may back off and try again later.
  - fatal: an arithmetic / convergence / invariant breach. The engine aborts
    the transaction atomically and logs at ERROR.

Exports:
- EchoForgeError (base)
- InvalidAmount, InvalidAddress
- InsufficientReserves, InsufficientBalance
- NoPosition, NoUnstakeRequest
- CooldownNotElapsed, QueueCapacityExceeded, UnstakeExceedsDailyCapacity
- CurveSoldOut
- ConvergenceError
- ArithmeticFault, Underflow, DivisionByZero
- InvariantViolation
"""


from typing import Any, Dict, Mapping, Optional
import json


class EchoForgeError(Exception):
    """Base class for EchoForge domain errors."""

    code: str = "ECHO_ERROR"
    http_status: int = 400
    retryable: bool = False
    fatal: bool = False

    def __init__(self, message: str = "", *, details: Optional[Mapping[str, Any]] = None) -> None:
        self.message = message or self.__class__.__name__
        self.details = dict(details or {})
        super().__init__(self.__str__())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.details:
            # Keep this compact and stable for logs
            try:
                packed = json.dumps(self.details, sort_keys=True, separators=(",", ":"))
            except (TypeError, ValueError):
                packed = str(self.details)
            return f"{self.code}: {self.message} [{packed}]"
        return f"{self.code}: {self.message}"


class InvalidAmount(EchoForgeError):
    """Zero, negative or otherwise malformed quantity."""
    code = "ECHO_INVALID_AMOUNT"

    def __init__(
        self,
        message: str = "invalid amount",
        *,
        amount: Optional[int] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        if amount is not None:
            d.setdefault("amount", str(amount))
        super().__init__(message, details=d)


class InvalidAddress(InvalidAmount):
    """Account identifier is not a 0x-prefixed 20-byte hex address."""
    code = "ECHO_INVALID_ADDRESS"

    def __init__(self, address: Any, *, message: str = "invalid account address") -> None:
        super().__init__(message, details={"address": repr(address)})


class InsufficientReserves(EchoForgeError):
    """Treasury holds less of an asset than a withdrawal requires."""
    code = "ECHO_INSUFFICIENT_RESERVES"
    http_status = 409

    def __init__(
        self,
        *,
        asset: str,
        required: int,
        available: int,
        message: str = "insufficient treasury reserves",
    ) -> None:
        super().__init__(
            message,
            details={"asset": asset, "required": str(required), "available": str(available)},
        )


class InsufficientBalance(EchoForgeError):
    """Account lacks unstaked or staked balance for the requested operation."""
    code = "ECHO_INSUFFICIENT_BALANCE"
    http_status = 409

    def __init__(
        self,
        *,
        account: str,
        required: int,
        available: int,
        bucket: str = "balance",
        message: str = "insufficient balance",
    ) -> None:
        super().__init__(
            message,
            details={
                "account": account,
                "bucket": bucket,
                "required": str(required),
                "available": str(available),
            },
        )


class NoPosition(EchoForgeError):
    """Account has no stake position."""
    code = "ECHO_NO_POSITION"
    http_status = 404

    def __init__(self, account: str, *, message: str = "account has no stake position") -> None:
        super().__init__(message, details={"account": account})


class NoUnstakeRequest(EchoForgeError):
    """execute/cancel called while the account has no outstanding request."""
    code = "ECHO_NO_UNSTAKE_REQUEST"
    http_status = 404

    def __init__(self, account: str, *, message: str = "no outstanding unstake request") -> None:
        super().__init__(message, details={"account": account})


class CooldownNotElapsed(EchoForgeError):
    """Unstake execution attempted before the snapshotted cooldown end epoch."""
    code = "ECHO_COOLDOWN_NOT_ELAPSED"
    http_status = 409
    retryable = True

    def __init__(self, *, account: str, current_epoch: int, cooldown_end_epoch: int) -> None:
        super().__init__(
            "unstake cooldown has not elapsed",
            details={
                "account": account,
                "current_epoch": int(current_epoch),
                "cooldown_end_epoch": int(cooldown_end_epoch),
            },
        )


class QueueCapacityExceeded(EchoForgeError):
    """
    The redemption window cannot absorb this unstake today. Transient: the
    window refills at the next day boundary.
    """
    code = "ECHO_QUEUE_CAPACITY_EXCEEDED"
    http_status = 429
    retryable = True

    def __init__(self, *, requested: int, remaining: int, window_day: int) -> None:
        super().__init__(
            "daily redemption capacity exhausted",
            details={
                "requested": str(requested),
                "remaining": str(remaining),
                "window_day": int(window_day),
            },
        )


class UnstakeExceedsDailyCapacity(QueueCapacityExceeded):
    """
    The request is larger than a whole day's redemption capacity, so waiting for
    the next window does not help. Not retryable: cancel and request at most
    `max_amount`.
    """
    code = "ECHO_UNSTAKE_EXCEEDS_DAILY_CAPACITY"
    http_status = 409
    retryable = False

    def __init__(self, *, requested: int, capacity: int, window_day: int) -> None:
        EchoForgeError.__init__(
            self,
            "unstake request exceeds a full day's redemption capacity; cancel and request at most max_amount",
            details={
                "requested": str(requested),
                "max_amount": str(capacity),
                "window_day": int(window_day),
            },
        )


class CurveSoldOut(EchoForgeError):
    """Bonding curve already reached its hard cap."""
    code = "ECHO_CURVE_SOLD_OUT"
    http_status = 409

    def __init__(self, *, cap: int) -> None:
        super().__init__("bonding curve sold out", details={"cap": str(cap)})


class ConvergenceError(EchoForgeError):
    """Root finder exhausted its iteration budget; indicates a calibration bug."""
    code = "ECHO_CONVERGENCE"
    http_status = 500
    fatal = True


class ArithmeticFault(EchoForgeError):
    """Base for fixed-point arithmetic failures."""
    code = "ECHO_ARITHMETIC"
    http_status = 500
    fatal = True


class Underflow(ArithmeticFault):
    code = "ECHO_UNDERFLOW"

    def __init__(self, a: int, b: int) -> None:
        super().__init__("subtraction underflow", details={"a": str(a), "b": str(b)})


class DivisionByZero(ArithmeticFault):
    code = "ECHO_DIV_BY_ZERO"

    def __init__(self, message: str = "division by zero") -> None:
        super().__init__(message)


class InvariantViolation(EchoForgeError):
    """A ledger invariant failed its post-transaction check."""
    code = "ECHO_INVARIANT"
    http_status = 500
    fatal = True


__all__ = [
    "EchoForgeError",
    "InvalidAmount",
    "InvalidAddress",
    "InsufficientReserves",
    "InsufficientBalance",
    "NoPosition",
    "NoUnstakeRequest",
    "CooldownNotElapsed",
    "QueueCapacityExceeded",
    "UnstakeExceedsDailyCapacity",
    "CurveSoldOut",
    "ConvergenceError",
    "ArithmeticFault",
    "Underflow",
    "DivisionByZero",
    "InvariantViolation",
]
