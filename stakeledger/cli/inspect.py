from __future__ import annotations

"""
stakeledger.cli.inspect
-----------------------

Read-only inspection of an engine snapshot (the JSON written from
`StakingEngine.dump()`):

- account: one account's record plus its pending emission
- report: global state and a per-account table
- config: the resolved configuration (defaults → file → environment)

Examples
--------
python -m stakeledger.cli.inspect account alice --state ledger.json
python -m stakeledger.cli.inspect account alice --state ledger.json --now 1700000600 --json
python -m stakeledger.cli.inspect report --state ledger.json
python -m stakeledger.cli.inspect config
"""

import json
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from stakeledger import config as config_mod
from stakeledger.engine import ManualClock, StakingEngine, system_clock
from stakeledger.errors import StakeLedgerError

app = typer.Typer(
    name="stakeledger-inspect",
    add_completion=False,
    no_args_is_help=True,
    help="Inspect staking ledger snapshots.",
)

# -------------------- utils --------------------


def _load_engine(state: Path, now: Optional[int]) -> StakingEngine:
    try:
        data = json.loads(state.read_text(encoding="utf-8"))
    except FileNotFoundError:
        typer.echo(f"state file not found: {state}", err=True)
        raise typer.Exit(code=2)
    except json.JSONDecodeError as e:
        typer.echo(f"state file is not valid JSON: {e}", err=True)
        raise typer.Exit(code=2)
    clock = ManualClock(now) if now is not None else system_clock
    try:
        return StakingEngine.load(data, clock=clock)
    except (KeyError, TypeError, ValueError, AttributeError, StakeLedgerError) as e:
        typer.echo(f"state file is not an engine snapshot: {e!r}", err=True)
        raise typer.Exit(code=2)


def _width(default: int = 100) -> int:
    return shutil.get_terminal_size((default, 20)).columns


def _pad(s: str, n: int) -> str:
    if len(s) <= n:
        return s + " " * (n - len(s))
    return s[: n - 1] + "…"


def _account_row(engine: StakingEngine, identity: str) -> Dict[str, Any]:
    acct = engine.get_account(identity)
    detail = engine.pending_rewards_detailed(identity)
    row: Dict[str, Any] = {"identity": identity}
    row.update(acct.snapshot())
    row["idle"] = acct.idle
    row["pending_total"] = detail.total
    row["pending_new"] = detail.new_portion
    row["pending_remainder"] = detail.remainder
    return row


# -------------------- commands --------------------


@app.command("account")
def account(
    identity: str = typer.Argument(..., help="Account identity."),
    state: Path = typer.Option(..., "--state", help="Path to an engine snapshot (JSON)."),
    now: Optional[int] = typer.Option(None, "--now", help="Evaluate pending rewards at this unix time."),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON."),
) -> None:
    """Show one account and its pending emission."""
    engine = _load_engine(state, now)
    row = _account_row(engine, identity)
    if as_json:
        typer.echo(json.dumps({k: str(v) if isinstance(v, int) else v for k, v in row.items()}, indent=2))
        return
    for k, v in row.items():
        typer.echo(f"{_pad(k, 20)} {v}")


@app.command("report")
def report(
    state: Path = typer.Option(..., "--state", help="Path to an engine snapshot (JSON)."),
    now: Optional[int] = typer.Option(None, "--now", help="Evaluate pending rewards at this unix time."),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON."),
) -> None:
    """Global state plus every account."""
    engine = _load_engine(state, now)
    gs = engine.global_state().to_dict()
    rows: List[Dict[str, Any]] = [_account_row(engine, i) for i in engine.ledger.identities()]
    if as_json:
        payload = {
            "global": {k: str(v) if isinstance(v, int) and not isinstance(v, bool) else v for k, v in gs.items()},
            "accounts": [{k: str(v) if isinstance(v, int) else v for k, v in r.items()} for r in rows],
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    typer.echo(
        f"asset={gs['asset']} reward_rate={gs['reward_rate']} total_staked={gs['total_staked']} "
        f"paused={gs['paused']} admins={','.join(gs['admins'])}"
    )
    cols = ("identity", "deposited", "staked", "idle", "pending_total", "stake_start")
    w = max(12, min(28, _width() // len(cols) - 1))
    typer.echo(" ".join(_pad(c, w) for c in cols))
    for r in rows:
        typer.echo(" ".join(_pad(str(r[c]), w) for c in cols))
    if not rows:
        typer.echo("(no accounts)")


@app.command("config")
def show_config() -> None:
    """Print the resolved configuration as JSON."""
    typer.echo(config_mod.pretty(config_mod.load()))


def main() -> None:  # pragma: no cover - console entrypoint
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
