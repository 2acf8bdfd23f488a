"""
Stipend CLI: recurring payment covenant tooling.

Commands:
    stipend deploy      Build the parameters and initial state of a covenant
    stipend allowance   Show the state a withdrawal would produce
    stipend propose     Build and sign a spend or revoke transaction
    stipend validate    Evaluate a candidate transaction against a covenant
"""

from __future__ import annotations

import json
import logging
import subprocess
import sys
from pathlib import Path
from typing import Optional

import click
from click.core import ParameterSource

from . import __version__
from .accountant import next_allowance
from .codec import contract_commitment, encode_contract
from .config import LedgerRules, log_level_from_env
from .contract import ContractParameters, ContractState, SpenderPolicy, deploy as deploy_state
from .covenant import CovenantValidator, propose_revoke, propose_spend
from .errors import CovenantError, StipendError
from .identity import display_address, normalize_private_key
from .money import coins_to_units, format_units, parse_base_units
from .outputs import continuation_value
from .transaction import CandidateTransaction


class AmountType(click.ParamType):
    """Base units as an integer, or a coin amount with a 'coin' suffix."""

    name = "amount"

    def convert(self, value, param, ctx):
        if isinstance(value, int):
            return value
        raw = str(value).strip().lower()
        try:
            if raw.endswith("coin"):
                return coins_to_units(raw[: -len("coin")].strip())
            if raw.isdigit():
                return int(raw)
        except ArithmeticError:
            pass
        self.fail(f"{value!r} is not a base-unit integer or '<n>coin' amount", param, ctx)


AMOUNT = AmountType()


# ── Documents ─────────────────────────────────────────────────────

# json.JSONDecodeError and CodecError are ValueErrors
_LOAD_ERRORS = (ValueError, KeyError, TypeError, StipendError)


def _contract_document(params: ContractParameters, state: ContractState, value: int) -> dict:
    return {
        "parameters": params.to_dict(),
        "state": state.to_dict(),
        "value": str(value),
        "commitment": "0x" + contract_commitment(params, state).hex(),
        "encoded": "0x" + encode_contract(params, state).hex(),
    }


def _load_contract(path: Path) -> tuple[ContractParameters, ContractState, int]:
    """Load a contract document: parameters, state and the value it locks."""
    with open(path) as f:
        doc = json.load(f)
    return (
        ContractParameters.from_dict(doc["parameters"]),
        ContractState.from_dict(doc["state"]),
        parse_base_units(doc["value"], "value"),
    )


def _load_transaction(path: Path) -> CandidateTransaction:
    with open(path) as f:
        return CandidateTransaction.from_dict(json.load(f))


def _load_or_exit(loader, path: Path):
    try:
        return loader(path)
    except _LOAD_ERRORS as e:
        click.echo(f"❌ Failed to load {path}: {e}", err=True)
        sys.exit(1)


def _emit(doc: dict, out: Optional[Path]) -> None:
    text = json.dumps(doc, indent=2)
    if out is None:
        click.echo(text)
        return
    out.write_text(text + "\n")
    click.echo(f"Saved to: {out}", err=True)


def _resolve_private_key(key_input: str) -> str:
    """Resolve a prompted key, reading op:// references through the 1Password CLI."""
    reference = key_input.strip()
    if not reference.startswith("op://"):
        return normalize_private_key(reference)

    result = subprocess.run(["op", "read", reference], capture_output=True, text=True, timeout=10)
    if result.returncode != 0:
        raise RuntimeError(f"Failed to read key from 1Password reference: {result.stderr.strip()}")
    return normalize_private_key(result.stdout)


# ── CLI ───────────────────────────────────────────────────────────

@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    default=log_level_from_env,
    show_default="env STIPEND_LOG_LEVEL or WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity",
)
def main(log_level: str):
    """Stipend: recurring payment covenants with payer revocation."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--payer", required=True, help="Payer address or public key")
@click.option("--payee", required=True, help="Payee address or public key")
@click.option("--epoch-length", type=click.IntRange(min=0), required=True,
              help="Window length in time units (0 = no time constraint)")
@click.option("--max-per-epoch", type=AMOUNT, required=True,
              help="Allowance per window (base units, or e.g. 0.5coin)")
@click.option("--value", type=AMOUNT, required=True,
              help="Value the payer funds the covenant with")
@click.option("--miner-fee", type=AMOUNT, default=None,
              help="Fee deducted per spend (default: env STIPEND_MINER_FEE or 1000)")
@click.option("--expiration", type=click.IntRange(min=0), default=None,
              help="Height after which only revoke is possible")
@click.option("--accumulation", is_flag=True, default=False,
              help="Carry unused allowance into later windows")
@click.option("--unrestricted-spender", is_flag=True, default=False,
              help="Let anyone trigger withdrawals to the payee")
@click.option("--deployed-at", type=click.IntRange(min=0), required=True,
              help="Time the covenant is funded (start of the first window)")
@click.option("--out", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Write the contract document here instead of stdout")
def deploy(
    payer: str,
    payee: str,
    epoch_length: int,
    max_per_epoch: int,
    value: int,
    miner_fee: Optional[int],
    expiration: Optional[int],
    accumulation: bool,
    unrestricted_spender: bool,
    deployed_at: int,
    out: Optional[Path],
):
    """Build a covenant's parameters and initial state."""
    rules = LedgerRules.from_env()
    try:
        params = ContractParameters(
            payer=payer,
            payee=payee,
            epoch_length=epoch_length,
            max_amount_per_epoch=max_per_epoch,
            miner_fee=rules.default_miner_fee if miner_fee is None else miner_fee,
            expiration=expiration,
            accumulation=accumulation,
            spender_policy=(
                SpenderPolicy.UNRESTRICTED if unrestricted_spender else SpenderPolicy.PAYEE_ONLY
            ),
        )
        state = deploy_state(params, deployed_at, dust_limit=rules.dust_limit)
        value = parse_base_units(value, "value")
    except (ValueError, CovenantError) as e:
        click.echo(f"❌ Failed to build covenant: {e}", err=True)
        sys.exit(1)

    click.echo(f"✅ Covenant {display_address(params.payer)} → {display_address(params.payee)}", err=True)
    click.echo(f"   Allowance: {format_units(params.max_amount_per_epoch)} per {epoch_length or '∞'}", err=True)
    click.echo(f"   Funded:    {format_units(value)}", err=True)
    _emit(_contract_document(params, state, value), out)


@main.command()
@click.argument("contract_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--at", "request_time", type=click.IntRange(min=0), required=True,
              help="Request time of the withdrawal")
@click.option("--amount", type=AMOUNT, required=True, help="Requested amount")
def allowance(contract_file: Path, request_time: int, amount: int):
    """Show the state a withdrawal of AMOUNT at --at would produce."""
    rules = LedgerRules.from_env()
    params, state, value = _load_or_exit(_load_contract, contract_file)
    outcome = next_allowance(params, state, request_time, amount, dust_limit=rules.dust_limit)
    try:
        next_state = outcome.unwrap()
        next_value = continuation_value(params, amount, value, rules.dust_limit)
    except CovenantError as e:
        click.echo(f"❌ Not allowed ({e.kind}): {e}", err=True)
        sys.exit(1)

    click.echo(f"✅ Allowed ({outcome.status.value})", err=True)
    if outcome.missed_epochs:
        click.echo(f"   Backlog:   {outcome.missed_epochs} missed epochs", err=True)
    if next_value == 0:
        click.echo("   Final payout: the covenant is drained", err=True)
        return
    click.echo(f"   Remaining: {format_units(next_state.remaining_amount)}", err=True)
    _emit(_contract_document(params, next_state, next_value), None)


@main.command()
@click.argument("contract_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--at", "request_time", type=click.IntRange(min=0), required=True,
              help="Request time of the transaction")
@click.option("--amount", type=AMOUNT, default=None, help="Requested amount (spend only)")
@click.option("--revoke", is_flag=True, default=False, help="Build the payer's revoke instead of a spend")
@click.option("--key", prompt=True, hide_input=True, help="Signer private key hex or op:// reference")
@click.option(
    "--unsafe-allow-key-arg",
    is_flag=True,
    default=False,
    help="Allow passing --key via argv (unsafe; can leak in shell/process history).",
)
@click.option("--out", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Write the transaction here instead of stdout")
def propose(
    contract_file: Path,
    request_time: int,
    amount: Optional[int],
    revoke: bool,
    key: str,
    unsafe_allow_key_arg: bool,
    out: Optional[Path],
):
    """Build and sign a candidate transaction spending the covenant's locked value."""
    ctx = click.get_current_context(silent=True)
    key_from_argv = (
        ctx is not None
        and ctx.get_parameter_source("key") == ParameterSource.COMMANDLINE
    )
    if key_from_argv and not unsafe_allow_key_arg:
        click.echo(
            "❌ Refusing --key from argv. Re-run with prompt input or pass "
            "--unsafe-allow-key-arg to acknowledge the risk.",
            err=True,
        )
        sys.exit(1)
    if not revoke and amount is None:
        click.echo("❌ --amount is required for a spend", err=True)
        sys.exit(1)

    params, state, value = _load_or_exit(_load_contract, contract_file)
    try:
        private_key = _resolve_private_key(key)
        if revoke:
            tx = propose_revoke(
                params,
                state,
                request_time=request_time,
                input_value=value,
                private_key=private_key,
            )
        else:
            tx = propose_spend(
                params,
                state,
                request_time=request_time,
                requested_amount=amount,
                input_value=value,
                private_key=private_key,
                rules=LedgerRules.from_env(),
            )
    except (ValueError, RuntimeError, CovenantError) as e:
        click.echo(f"❌ Failed to build transaction: {e}", err=True)
        sys.exit(1)

    _emit(tx.to_dict(), out)


@main.command()
@click.argument("contract_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("tx_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--out", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Write the successor contract document here when the spend continues")
def validate(contract_file: Path, tx_file: Path, out: Optional[Path]):
    """Evaluate TX_FILE against the covenant in CONTRACT_FILE."""
    params, state, value = _load_or_exit(_load_contract, contract_file)
    tx = _load_or_exit(_load_transaction, tx_file)
    verdict = CovenantValidator(LedgerRules.from_env()).evaluate(params, state, tx, value)

    click.echo(json.dumps(verdict.to_dict(), indent=2))
    if not verdict.accepted:
        click.echo(f"❌ Rejected ({verdict.error_kind}): {verdict.reason}", err=True)
        sys.exit(1)

    click.echo(f"✅ Accepted: {verdict.outcome.value}", err=True)
    if out is not None and verdict.next_state is not None:
        successor = _contract_document(params, verdict.next_state, verdict.next_value)
        out.write_text(json.dumps(successor, indent=2) + "\n")
        click.echo(f"   Successor saved to: {out}", err=True)


if __name__ == "__main__":
    main()
