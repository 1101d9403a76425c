from __future__ import annotations

"""
echoforge.rpc.methods
---------------------

JSON-RPC style method implementations over a ProtocolEngine.

Exposed methods (bind via `make_methods`):
  queries
  • echo.getStatus            • echo.getCurrentPrice       • echo.totalEchoSold
  • echo.getEchoAmount        • echo.getBackingRatio       • echo.getRunway
  • echo.getStakedBalance     • echo.getPendingRewards     • echo.getAccount
  • echo.calculateUnstakePenalty                           • echo.getUnstakeRequest
  • echo.getRedemptionWindow  • echo.getReferralData       • echo.getDirectReferrals
  • echo.getReferralChain     • echo.calculateDynamicAPY   • echo.getTreasury
  commands
  • echo.buyWithPayment       • echo.stake                 • echo.requestUnstake
  • echo.executeUnstake       • echo.cancelUnstake         • echo.claimRewards
  • echo.compound             • echo.rebaseTick            • echo.transfer
  • echo.recordTreasuryInflow • echo.treasurySpend         • echo.setMark
  • echo.setReferencePrice

Conventions:
  - Parameters are keyword-only, camelCase, as a JSON-RPC dispatcher passes them.
  - Token amounts travel as decimal strings of WAD integers (JSON numbers
    cannot carry 10**18-scaled values exactly); bps and epochs are plain ints.
  - Domain failures propagate as EchoForgeError; `build_rest_router` maps them
    to HTTP status codes with the error's `to_dict()` as the body.

Usage:
    from echoforge.rpc.methods import make_methods
    methods = make_methods(engine)
    methods["echo.stake"](account="0x…", amount="1000000000000000000")
"""

from typing import Any, Callable, Dict, Optional

from echoforge.engine import ProtocolEngine
from echoforge.errors import EchoForgeError, InvalidAmount
from echoforge.types import AssetKind, normalize_address

# ---- Helpers ---------------------------------------------------------------


def _coerce_amount(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise InvalidAmount(f"invalid {name}: must be an integer amount")
    try:
        iv = int(str(value).strip())
    except (TypeError, ValueError) as e:
        raise InvalidAmount(f"invalid {name}: must be an integer amount") from e
    if iv < 0:
        raise InvalidAmount(f"invalid {name}: must be non-negative", amount=iv)
    return iv


def _coerce_kind(value: Any) -> AssetKind:
    try:
        return AssetKind.parse(value)
    except ValueError as e:
        raise InvalidAmount(str(e)) from e


def _account_view(engine: ProtocolEngine, account: str) -> Dict[str, Any]:
    pos = engine.get_position(account)
    req = engine.get_unstake_request(account)
    return {
        "account": normalize_address(account),
        "balance": str(engine.balance_of(account)),
        "stakedBalance": str(engine.get_staked_balance(account)),
        "pendingRewards": str(engine.get_pending_rewards(account)),
        "rebasedBalance": str(engine.get_rebased_balance(account)),
        "position": None if pos is None else pos.to_dict(),
        "unstakeState": engine.get_unstake_state(account).value,
        "unstakeRequest": None if req is None else req.to_dict(),
        "referral": engine.get_referral_data(account).to_dict(),
    }


# ---- JSON-RPC method factory ----------------------------------------------


def make_methods(engine: ProtocolEngine) -> Dict[str, Callable[..., Any]]:
    """
    Build a mapping of JSON-RPC method name -> callable.
    Each callable returns plain JSON-serializable structures.
    """

    # -- queries --

    def echo_get_status() -> Dict[str, Any]:
        return engine.status()

    def echo_get_current_price() -> Dict[str, Any]:
        return {"priceWad": str(engine.get_current_price()), "referencePriceWad": str(engine.get_reference_price())}

    def echo_total_echo_sold() -> Dict[str, Any]:
        return {"sold": str(engine.total_echo_sold()), "cap": str(engine.curve.cap)}

    def echo_get_echo_amount(*, payment: Any) -> Dict[str, Any]:
        return engine.get_echo_amount(_coerce_amount(payment, "payment")).to_dict()

    def echo_get_backing_ratio() -> Dict[str, Any]:
        return {"backingRatioBps": str(engine.get_backing_ratio())}

    def echo_get_runway() -> Dict[str, Any]:
        return {"runwayDays": str(engine.get_runway())}

    def echo_get_staked_balance(*, account: str) -> Dict[str, Any]:
        return {"account": normalize_address(account), "stakedBalance": str(engine.get_staked_balance(account))}

    def echo_get_pending_rewards(*, account: str) -> Dict[str, Any]:
        return {"account": normalize_address(account), "pendingRewards": str(engine.get_pending_rewards(account))}

    def echo_get_account(*, account: str) -> Dict[str, Any]:
        return _account_view(engine, account)

    def echo_calculate_unstake_penalty(*, amount: Any) -> Dict[str, Any]:
        return engine.calculate_unstake_penalty(_coerce_amount(amount, "amount")).to_dict()

    def echo_get_unstake_request(*, account: str) -> Dict[str, Any]:
        req = engine.get_unstake_request(account)
        return {
            "account": normalize_address(account),
            "state": engine.get_unstake_state(account).value,
            "request": None if req is None else req.to_dict(),
        }

    def echo_get_redemption_window() -> Dict[str, Any]:
        return engine.get_redemption_window().to_dict()

    def echo_get_referral_data(*, account: str) -> Dict[str, Any]:
        return engine.get_referral_data(account).to_dict()

    def echo_get_direct_referrals(*, account: str) -> Dict[str, Any]:
        return {"account": normalize_address(account), "items": engine.get_direct_referrals(account)}

    def echo_get_referral_chain(*, account: str) -> Dict[str, Any]:
        return {"account": normalize_address(account), "items": engine.get_referral_chain(account)}

    def echo_calculate_dynamic_apy(*, backingRatioBps: Optional[Any] = None) -> Dict[str, Any]:
        ratio = None if backingRatioBps is None else _coerce_amount(backingRatioBps, "backingRatioBps")
        return {"apyBps": engine.calculate_dynamic_apy(ratio)}

    def echo_get_treasury(*, journalLimit: Optional[int] = 20) -> Dict[str, Any]:
        limit = None if journalLimit is None else _coerce_amount(journalLimit, "journalLimit")
        return {
            "holdings": {k.value: str(v) for k, v in engine.treasury_holdings().items()},
            "totalValue": str(engine.get_total_value()),
            "liquidValue": str(engine.get_liquid_value()),
            "shouldExecuteBuyback": engine.should_execute_buyback(),
            "totalBurned": str(engine.total_burned()),
            "journal": [je.to_dict() for je in engine.journal(limit)],
        }

    # -- commands --

    def echo_buy_with_payment(*, account: str, payment: Any) -> Dict[str, Any]:
        return engine.buy_with_payment(account, _coerce_amount(payment, "payment")).to_dict()

    def echo_stake(*, account: str, amount: Any, sponsor: Optional[str] = None) -> Dict[str, Any]:
        return engine.stake(account, _coerce_amount(amount, "amount"), sponsor).to_dict()

    def echo_request_unstake(*, account: str, amount: Any) -> Dict[str, Any]:
        return engine.request_unstake(account, _coerce_amount(amount, "amount")).to_dict()

    def echo_execute_unstake(*, account: str) -> Dict[str, Any]:
        return engine.execute_unstake(account).to_dict()

    def echo_cancel_unstake(*, account: str) -> Dict[str, Any]:
        return engine.cancel_unstake(account).to_dict()

    def echo_claim_rewards(*, account: str) -> Dict[str, Any]:
        return {"account": normalize_address(account), "claimed": str(engine.claim_rewards(account))}

    def echo_compound(*, account: str) -> Dict[str, Any]:
        return {"account": normalize_address(account), "compounded": str(engine.compound(account))}

    def echo_rebase_tick() -> Dict[str, Any]:
        return engine.rebase_tick().to_dict()

    def echo_transfer(*, sender: str, recipient: str, amount: Any) -> Dict[str, Any]:
        q = engine.transfer(sender, recipient, _coerce_amount(amount, "amount"))
        return {"amount": str(q.amount), "rateBps": q.rate_bps, "tax": str(q.tax), "net": str(q.net)}

    def echo_record_treasury_inflow(*, kind: str, amount: Any, reason: str = "inflow") -> Dict[str, Any]:
        return engine.record_treasury_inflow(_coerce_kind(kind), _coerce_amount(amount, "amount"), reason=reason).to_dict()

    def echo_treasury_spend(
        *, kind: str, amount: Any, recipient: Optional[str] = None, reason: str = "spend"
    ) -> Dict[str, Any]:
        return engine.treasury_spend(
            _coerce_kind(kind), _coerce_amount(amount, "amount"), recipient=recipient, reason=reason
        ).to_dict()

    def echo_set_mark(*, kind: str, priceWad: Any) -> Dict[str, Any]:
        return engine.set_mark(_coerce_kind(kind), _coerce_amount(priceWad, "priceWad")).to_dict()

    def echo_set_reference_price(*, priceWad: Optional[Any] = None) -> Dict[str, Any]:
        price = None if priceWad is None else _coerce_amount(priceWad, "priceWad")
        engine.set_reference_price(price)
        return {"referencePriceWad": str(engine.get_reference_price()), "override": price is not None}

    # Map JSON-RPC names → callables
    return {
        "echo.getStatus": echo_get_status,
        "echo.getCurrentPrice": echo_get_current_price,
        "echo.totalEchoSold": echo_total_echo_sold,
        "echo.getEchoAmount": echo_get_echo_amount,
        "echo.getBackingRatio": echo_get_backing_ratio,
        "echo.getRunway": echo_get_runway,
        "echo.getStakedBalance": echo_get_staked_balance,
        "echo.getPendingRewards": echo_get_pending_rewards,
        "echo.getAccount": echo_get_account,
        "echo.calculateUnstakePenalty": echo_calculate_unstake_penalty,
        "echo.getUnstakeRequest": echo_get_unstake_request,
        "echo.getRedemptionWindow": echo_get_redemption_window,
        "echo.getReferralData": echo_get_referral_data,
        "echo.getDirectReferrals": echo_get_direct_referrals,
        "echo.getReferralChain": echo_get_referral_chain,
        "echo.calculateDynamicAPY": echo_calculate_dynamic_apy,
        "echo.getTreasury": echo_get_treasury,
        "echo.buyWithPayment": echo_buy_with_payment,
        "echo.stake": echo_stake,
        "echo.requestUnstake": echo_request_unstake,
        "echo.executeUnstake": echo_execute_unstake,
        "echo.cancelUnstake": echo_cancel_unstake,
        "echo.claimRewards": echo_claim_rewards,
        "echo.compound": echo_compound,
        "echo.rebaseTick": echo_rebase_tick,
        "echo.transfer": echo_transfer,
        "echo.recordTreasuryInflow": echo_record_treasury_inflow,
        "echo.treasurySpend": echo_treasury_spend,
        "echo.setMark": echo_set_mark,
        "echo.setReferencePrice": echo_set_reference_price,
    }


# ---- REST adapter (FastAPI) ------------------------------------------------

# POST path → JSON-RPC method; request bodies are passed through as keyword params.
_POST_ROUTES = {
    "/buy": "echo.buyWithPayment",
    "/stake": "echo.stake",
    "/unstake/request": "echo.requestUnstake",
    "/unstake/execute": "echo.executeUnstake",
    "/unstake/cancel": "echo.cancelUnstake",
    "/claim": "echo.claimRewards",
    "/compound": "echo.compound",
    "/rebase": "echo.rebaseTick",
    "/transfer": "echo.transfer",
    "/treasury/inflow": "echo.recordTreasuryInflow",
    "/treasury/spend": "echo.treasurySpend",
    "/treasury/mark": "echo.setMark",
    "/treasury/reference-price": "echo.setReferencePrice",
}


def build_rest_router(engine: ProtocolEngine):
    """
    Return a FastAPI APIRouter: GET for queries, POST (JSON body) for commands.
    Mount path suggestion: "/echo" (see echoforge.rpc.mount).
    """
    from fastapi import APIRouter, Body, HTTPException, Query

    router = APIRouter()
    methods = make_methods(engine)

    def call(name: str, **params: Any) -> Any:
        try:
            return methods[name](**params)
        except EchoForgeError as e:
            raise HTTPException(status_code=e.http_status, detail=e.to_dict()) from e
        except TypeError as e:
            # unknown / missing body fields
            raise HTTPException(
                status_code=400, detail={"code": "ECHO_BAD_REQUEST", "message": str(e), "details": {}}
            ) from e

    @router.get("/status")
    def http_status():
        return call("echo.getStatus")

    @router.get("/price")
    def http_price():
        return call("echo.getCurrentPrice")

    @router.get("/sold")
    def http_sold():
        return call("echo.totalEchoSold")

    @router.get("/quote")
    def http_quote(payment: str = Query(...)):
        return call("echo.getEchoAmount", payment=payment)

    @router.get("/backing-ratio")
    def http_backing_ratio():
        return call("echo.getBackingRatio")

    @router.get("/runway")
    def http_runway():
        return call("echo.getRunway")

    @router.get("/apy")
    def http_apy(backingRatioBps: Optional[str] = None):
        return call("echo.calculateDynamicAPY", backingRatioBps=backingRatioBps)

    @router.get("/penalty")
    def http_penalty(amount: str = Query(...)):
        return call("echo.calculateUnstakePenalty", amount=amount)

    @router.get("/redemption-window")
    def http_redemption_window():
        return call("echo.getRedemptionWindow")

    @router.get("/treasury")
    def http_treasury(journalLimit: int = Query(20, ge=0, le=1000)):
        return call("echo.getTreasury", journalLimit=journalLimit)

    @router.get("/accounts/{account}")
    def http_account(account: str):
        return call("echo.getAccount", account=account)

    @router.get("/accounts/{account}/staked")
    def http_staked(account: str):
        return call("echo.getStakedBalance", account=account)

    @router.get("/accounts/{account}/pending")
    def http_pending(account: str):
        return call("echo.getPendingRewards", account=account)

    @router.get("/accounts/{account}/unstake")
    def http_unstake_request(account: str):
        return call("echo.getUnstakeRequest", account=account)

    @router.get("/accounts/{account}/referral")
    def http_referral(account: str):
        return call("echo.getReferralData", account=account)

    @router.get("/accounts/{account}/referrals")
    def http_direct_referrals(account: str):
        return call("echo.getDirectReferrals", account=account)

    @router.get("/accounts/{account}/referral-chain")
    def http_referral_chain(account: str):
        return call("echo.getReferralChain", account=account)

    def _post_handler(name: str):
        def handler(payload: Optional[Dict[str, Any]] = Body(None)):
            return call(name, **(payload or {}))

        return handler

    for path, name in _POST_ROUTES.items():
        router.add_api_route(path, _post_handler(name), methods=["POST"], name=name)

    return router


__all__ = ["make_methods", "build_rest_router"]
