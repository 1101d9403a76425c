from __future__ import annotations

"""
echoforge - command-line driver for a local EchoForge ledger.

The ledger lives in a JSON snapshot file (``--state``, default
``$ECHOFORGE_STATE`` or ./echoforge_state.json). Each command loads the
snapshot, runs one engine operation and, for commands that change the
ledger, writes the snapshot back. A failed command leaves the file untouched.

Token amounts on the command line are decimal token strings ("12.5");
output is JSON with amounts as WAD integer strings.

Examples
--------
    echoforge init
    echoforge buy 0x1111111111111111111111111111111111111111 10
    echoforge stake 0x1111111111111111111111111111111111111111 1000
    echoforge rebase --ticks 7
    echoforge request-unstake 0x1111111111111111111111111111111111111111 250
    echoforge status
    echoforge serve --port 8645
"""

import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import typer

from echoforge import config as ef_config
from echoforge import logging as elog
from echoforge.engine import ProtocolEngine
from echoforge.errors import EchoForgeError
from echoforge.fixedpoint import to_wad
from echoforge.rpc.methods import make_methods
from echoforge.version import __version__

DEFAULT_STATE_FILE = "echoforge_state.json"

app = typer.Typer(
    name="echoforge",
    add_completion=False,
    no_args_is_help=True,
    help="Drive a local EchoForge ledger: bonding curve, staking, unstake queue, referrals, treasury.",
)


class _CliContext:
    def __init__(self) -> None:
        self.state_path: Path = Path(DEFAULT_STATE_FILE)


_ctx = _CliContext()


@app.callback()
def main_callback(
    state: Path = typer.Option(
        Path(DEFAULT_STATE_FILE),
        "--state",
        envvar="ECHOFORGE_STATE",
        help="Ledger snapshot file (JSON).",
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Minimum log level written to stderr."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON lines."),
) -> None:
    """
    EchoForge protocol engine CLI.

    Configuration comes from $ECHOFORGE_CONFIG_FILE and ECHOFORGE_* variables
    (see `echoforge config`); the ledger itself from the --state file.
    """
    _ctx.state_path = state
    elog.configure(json=json_logs, level=log_level)


# -------------------- utils --------------------


def _emit(obj: Any) -> None:
    typer.echo(json.dumps(obj, indent=2, sort_keys=True))


def _load_engine(path: Path) -> ProtocolEngine:
    cfg = ef_config.load()
    if not path.exists():
        return ProtocolEngine(config=cfg)
    data = json.loads(path.read_text(encoding="utf-8"))
    return ProtocolEngine.from_snapshot(data, config=cfg)


def _save_engine(engine: ProtocolEngine, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(json.dumps(engine.dump(), indent=2, sort_keys=True), encoding="utf-8")
    os.replace(tmp, path)


@contextmanager
def _guard() -> Iterator[None]:
    try:
        yield
    except EchoForgeError as e:
        _emit({"error": e.to_dict()})
        raise typer.Exit(1) from e
    except ValueError as e:
        typer.secho(f"error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(2) from e


def _call(method: str, *, write: bool = False, tokens: Optional[Dict[str, str]] = None, **params: Any) -> None:
    """Run one RPC method against the snapshot; `tokens` are decimal amounts converted to WAD."""
    with _guard():
        for name, text in (tokens or {}).items():
            params[name] = str(to_wad(text))
        engine = _load_engine(_ctx.state_path)
        result = make_methods(engine)[method](**params)
        if write:
            _save_engine(engine, _ctx.state_path)
    _emit(result)


# -------------------- ledger setup & views --------------------


@app.command("init")
def cmd_init(force: bool = typer.Option(False, "--force", help="Overwrite an existing state file.")) -> None:
    """Create an empty ledger snapshot."""
    path = _ctx.state_path
    if path.exists() and not force:
        typer.secho(f"{path} already exists (use --force to overwrite)", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    with _guard():
        engine = ProtocolEngine(config=ef_config.load())
        _save_engine(engine, path)
    _emit({"state": str(path), "status": engine.status()})


@app.command("status")
def cmd_status() -> None:
    """Headline numbers: price, supply, backing ratio, APY, runway."""
    _call("echo.getStatus")


@app.command("account")
def cmd_account(account: str = typer.Argument(..., help="0x-prefixed account address.")) -> None:
    """Balance, stake position, unstake request and referral data for one account."""
    _call("echo.getAccount", account=account)


@app.command("quote")
def cmd_quote(payment: str = typer.Argument(..., help="Payment in reference-asset tokens.")) -> None:
    """Preview a bonding-curve purchase."""
    _call("echo.getEchoAmount", tokens={"payment": payment})


@app.command("penalty")
def cmd_penalty(amount: str = typer.Argument(..., help="Amount to unstake, in tokens.")) -> None:
    """Penalty and cooldown an unstake would lock in right now."""
    _call("echo.calculateUnstakePenalty", tokens={"amount": amount})


@app.command("apy")
def cmd_apy(
    ratio_bps: Optional[int] = typer.Option(None, "--ratio-bps", min=0, help="Backing ratio to evaluate (default: current)."),
) -> None:
    _call("echo.calculateDynamicAPY", backingRatioBps=ratio_bps)


@app.command("window")
def cmd_window() -> None:
    """Today's redemption window."""
    _call("echo.getRedemptionWindow")


@app.command("treasury")
def cmd_treasury(
    journal_limit: int = typer.Option(20, "--journal-limit", min=0, max=10000, help="Most recent journal entries to show."),
) -> None:
    _call("echo.getTreasury", journalLimit=journal_limit)


@app.command("referrals")
def cmd_referrals(account: str = typer.Argument(...)) -> None:
    """Sponsor, direct referrals, volume and earnings of an account."""
    _call("echo.getReferralData", account=account)


# -------------------- commands --------------------


@app.command("buy")
def cmd_buy(
    account: str = typer.Argument(..., help="Buyer account."),
    payment: str = typer.Argument(..., help="Payment in reference-asset tokens."),
) -> None:
    """Buy from the bonding curve."""
    _call("echo.buyWithPayment", write=True, account=account, tokens={"payment": payment})


@app.command("stake")
def cmd_stake(
    account: str = typer.Argument(...),
    amount: str = typer.Argument(..., help="Tokens to stake."),
    sponsor: Optional[str] = typer.Option(None, "--sponsor", help="Sponsor account (binds on first stake only)."),
) -> None:
    _call("echo.stake", write=True, account=account, sponsor=sponsor, tokens={"amount": amount})


@app.command("request-unstake")
def cmd_request_unstake(account: str = typer.Argument(...), amount: str = typer.Argument(...)) -> None:
    """Open (or replace) an unstake request; penalty and cooldown are fixed now."""
    _call("echo.requestUnstake", write=True, account=account, tokens={"amount": amount})


@app.command("execute-unstake")
def cmd_execute_unstake(account: str = typer.Argument(...)) -> None:
    _call("echo.executeUnstake", write=True, account=account)


@app.command("cancel-unstake")
def cmd_cancel_unstake(account: str = typer.Argument(...)) -> None:
    _call("echo.cancelUnstake", write=True, account=account)


@app.command("claim")
def cmd_claim(account: str = typer.Argument(...)) -> None:
    """Move pending rewards into the transferable balance."""
    _call("echo.claimRewards", write=True, account=account)


@app.command("compound")
def cmd_compound(account: str = typer.Argument(...)) -> None:
    """Fold pending rewards back into rebasing principal."""
    _call("echo.compound", write=True, account=account)


@app.command("rebase")
def cmd_rebase(ticks: int = typer.Option(1, "--ticks", min=1, max=100000, help="Number of rebase ticks to apply.")) -> None:
    """Advance the epoch, growing every stake by the current tick rate."""
    with _guard():
        engine = _load_engine(_ctx.state_path)
        results = [engine.rebase_tick().to_dict() for _ in range(ticks)]
        _save_engine(engine, _ctx.state_path)
    _emit({"ticks": ticks, "results": results})


@app.command("transfer")
def cmd_transfer(
    sender: str = typer.Argument(...),
    recipient: str = typer.Argument(...),
    amount: str = typer.Argument(...),
) -> None:
    """Transfer unstaked tokens; the adaptive tax goes to the treasury."""
    _call("echo.transfer", write=True, sender=sender, recipient=recipient, tokens={"amount": amount})


@app.command("inflow")
def cmd_inflow(
    kind: str = typer.Argument(..., help="native | stable | yield_bearing"),
    amount: str = typer.Argument(...),
    reason: str = typer.Option("inflow", "--reason"),
) -> None:
    """Record external value entering the treasury."""
    _call("echo.recordTreasuryInflow", write=True, kind=kind, reason=reason, tokens={"amount": amount})


@app.command("spend")
def cmd_spend(
    kind: str = typer.Argument(...),
    amount: str = typer.Argument(...),
    recipient: Optional[str] = typer.Option(None, "--recipient", help="Required for protocol_token."),
    reason: str = typer.Option("spend", "--reason"),
) -> None:
    """Draw value out of the treasury."""
    _call("echo.treasurySpend", write=True, kind=kind, recipient=recipient, reason=reason, tokens={"amount": amount})


@app.command("mark")
def cmd_mark(kind: str = typer.Argument(...), price: str = typer.Argument(..., help="Price per unit in reference asset.")) -> None:
    """Set the mark price of a treasury asset class."""
    _call("echo.setMark", write=True, kind=kind, tokens={"priceWad": price})


@app.command("reference-price")
def cmd_reference_price(
    price: Optional[str] = typer.Argument(None, help="Oracle price of one token; omit with --clear."),
    clear: bool = typer.Option(False, "--clear", help="Fall back to the configured or curve price."),
) -> None:
    if clear == (price is not None):
        typer.secho("give a price or --clear (not both)", fg=typer.colors.RED, err=True)
        raise typer.Exit(2)
    if clear:
        _call("echo.setReferencePrice", write=True, priceWad=None)
    else:
        _call("echo.setReferencePrice", write=True, tokens={"priceWad": str(price)})


# -------------------- misc --------------------


@app.command("config")
def cmd_config() -> None:
    """Print the effective configuration."""
    with _guard():
        typer.echo(ef_config.pretty(ef_config.load()))


@app.command("version")
def cmd_version() -> None:
    typer.echo(__version__)


@app.command("serve")
def cmd_serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8645, "--port", min=1, max=65535),
) -> None:
    """Serve the ledger over HTTP (JSON-RPC at /rpc, REST under /echo); the snapshot is saved after every committed command."""
    from echoforge.rpc.server import create_app

    with _guard():
        engine = _load_engine(_ctx.state_path)
    state_path = _ctx.state_path
    engine.add_commit_listener(lambda op: _save_engine(engine, state_path))
    # Lazy import keeps the CLI usable without uvicorn installed
    import uvicorn

    uvicorn.run(create_app(engine), host=host, port=port, workers=1)


def main() -> None:
    """Entry point for the echoforge console script."""
    app()


if __name__ == "__main__":
    main()
