#!/usr/bin/env python3
"""CLI interface for the Squads multisig orchestrator."""

import json
import logging
import sys
from functools import wraps
from typing import Optional

import click
import requests
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer

from .accounts import decode_multisig, decode_proposal, fetch_program_account
from .config import USDC_MINT, Settings, load_config, load_keypair, mask_api_key
from .errors import OrchestratorError
from .formatters import format_json, format_multisig_table, format_proposal_table
from .ledger import RpcLedger
from .orchestrator import MultisigOrchestrator
from .pda import get_proposal_pda
from .types import Period

PERIODS = {"one-time": Period.ONE_TIME, "day": Period.DAY, "week": Period.WEEK, "month": Period.MONTH}


def handle_errors(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (OrchestratorError, requests.RequestException, ValueError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    return wrapper


def _pubkey(value: str) -> Pubkey:
    try:
        return Pubkey.from_string(value)
    except ValueError as e:
        raise click.BadParameter(f"not a valid address: {value}") from e


def _orchestrator(ctx, multisig: Optional[str] = None) -> MultisigOrchestrator:
    settings: Settings = ctx.obj["settings"]
    return MultisigOrchestrator(
        ctx.obj["ledger"],
        fee_payer=load_keypair(settings.fee_payer_secret, "FEE_PAYER_SECRET_KEY"),
        agent=load_keypair(settings.agent_secret, "AGENT_SECRET_KEY"),
        settings=settings,
        multisig_pda=_pubkey(multisig) if multisig else None,
    )


def _emit(text: str, output: Optional[str]):
    if output:
        with open(output, "w") as f:
            f.write(text)
        click.echo(f"Output written to: {output}", err=True)
    else:
        click.echo(text)


@click.group()
@click.version_option(version="1.0.0")
@click.option("-r", "--rpc", help="RPC endpoint URL")
@click.option("-c", "--config", "config_path", type=click.Path(exists=True), help="YAML config file")
@click.option("--env-file", type=click.Path(exists=True), help=".env file to load")
@click.option("--no-confirm", is_flag=True, help="Do not wait for confirmation after sending")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, rpc, config_path, env_file, no_confirm, verbose):
    """Create and drive Squads v4 multisigs on Solana."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[logging.StreamHandler()],
    )
    try:
        settings = Settings.from_env(env_file)
        if config_path:
            settings = load_config(config_path, base=settings)
    except OrchestratorError as e:
        raise click.ClickException(str(e))
    if rpc:
        settings = settings.with_overrides(rpc_url=rpc)
    if no_confirm:
        settings = settings.with_overrides(confirm=False)

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    try:
        ctx.obj["ledger"] = RpcLedger.from_settings(settings)
    except OrchestratorError as e:
        raise click.ClickException(str(e))
    click.echo(f"Using RPC: {mask_api_key(settings.rpc_url)}", err=True)


@cli.command()
@click.option("-t", "--threshold", type=int, default=1, show_default=True)
@click.option("--time-lock", type=int, default=0, show_default=True, help="Seconds")
@click.option("-m", "--member", "members", multiple=True, help="Member address (default: fee payer and agent)")
@click.option("--create-key-out", type=click.Path(), help="Save the one-time create key as a JSON keypair")
@click.pass_context
@handle_errors
def create(ctx, threshold: int, time_lock: int, members, create_key_out: Optional[str]):
    """Create a multisig where every member has full permissions."""
    orchestrator = _orchestrator(ctx)
    member_keys = [_pubkey(m) for m in members] or None
    result, signature = orchestrator.create_multisig(member_keys, threshold=threshold, time_lock=time_lock)

    if create_key_out:
        with open(create_key_out, "w") as f:
            json.dump(list(bytes(result.create_key)), f)

    click.echo(f"Multisig:   {result.multisig_pda}")
    click.echo(f"Vault 0:    {orchestrator.vault_pda}")
    click.echo(f"Create Key: {result.create_key.pubkey()}")
    click.echo(f"Signature:  {signature}")


@cli.command("spending-limit")
@click.argument("multisig")
@click.option("--mint", default=USDC_MINT, show_default=True)
@click.option("--amount", type=int, default=1_000_000, show_default=True, help="Base units per period")
@click.option("--period", type=click.Choice(list(PERIODS)), default="day", show_default=True)
@click.option("-m", "--member", "members", multiple=True, help="Authorized member (default: agent)")
@click.option("-d", "--destination", "destinations", multiple=True, help="Allowed destination (default: any)")
@click.option("--vault-index", type=int, default=0, show_default=True)
@click.pass_context
@handle_errors
def spending_limit(ctx, multisig, mint, amount, period, members, destinations, vault_index):
    """Attach a spending limit to a multisig vault."""
    orchestrator = _orchestrator(ctx, multisig)
    result, signature = orchestrator.add_spending_limit(
        _pubkey(mint),
        amount,
        authorized_members=[_pubkey(m) for m in members] or None,
        period=PERIODS[period],
        destinations=[_pubkey(d) for d in destinations],
        vault_index=vault_index,
    )
    click.echo(f"Spending Limit: {result.spending_limit_pda}")
    click.echo(f"Signature:      {signature}")


@cli.command()
@click.argument("multisig")
@click.option("--transfer-to", help="Transfer SOL from the vault to this address")
@click.option("--lamports", type=int, default=0, show_default=True)
@click.option("--vault-index", type=int, default=0, show_default=True)
@click.option("--memo", help="Memo stored with the vault transaction")
@click.pass_context
@handle_errors
def propose(ctx, multisig, transfer_to, lamports, vault_index, memo):
    """Propose and approve a vault transaction (empty unless --transfer-to is set)."""
    orchestrator = _orchestrator(ctx, multisig)
    instructions = []
    if transfer_to:
        instructions.append(transfer(TransferParams(
            from_pubkey=orchestrator.get_vault(vault_index),
            to_pubkey=_pubkey(transfer_to),
            lamports=lamports,
        )))

    submission = orchestrator.submit_proposal(instructions, vault_index=vault_index, memo=memo)
    click.echo(f"Transaction Index: {submission.transaction_index}")
    click.echo(f"Attempts:          {submission.attempts}")
    click.echo(f"Signature:         {submission.signature}")


def _vote_command(name: str, help_text: str):
    @cli.command(name, help=help_text)
    @click.argument("multisig")
    @click.argument("index", type=int)
    @click.pass_context
    @handle_errors
    def command(ctx, multisig, index):
        orchestrator = _orchestrator(ctx, multisig)
        signature = getattr(orchestrator, f"{name}_proposal")(index)
        click.echo(f"Signature: {signature}")
    return command


approve = _vote_command("approve", "Approve the proposal at INDEX as the agent.")
reject = _vote_command("reject", "Reject the proposal at INDEX as the agent.")
cancel = _vote_command("cancel", "Cancel the approved proposal at INDEX as the agent.")
execute = _vote_command("execute", "Execute the vault transaction at INDEX.")


@cli.command("multisig")
@click.argument("address")
@click.option("-f", "--format", type=click.Choice(["table", "json"]), default="table", help="Output format")
@click.option("-o", "--output", type=click.Path(), help="Write output to file")
@click.pass_context
@handle_errors
def show_multisig(ctx, address: str, format: str, output: Optional[str]):
    """Show a multisig account."""
    settings: Settings = ctx.obj["settings"]
    account = fetch_program_account(ctx.obj["ledger"], _pubkey(address), settings.program_id, "multisig")
    info = decode_multisig(address, account.data)
    _emit(format_json(info) if format == "json" else format_multisig_table(info), output)


@cli.command("proposal")
@click.argument("multisig")
@click.argument("index", type=int)
@click.option("-f", "--format", type=click.Choice(["table", "json"]), default="table", help="Output format")
@click.option("-o", "--output", type=click.Path(), help="Write output to file")
@click.pass_context
@handle_errors
def show_proposal(ctx, multisig: str, index: int, format: str, output: Optional[str]):
    """Show the proposal at INDEX of a multisig."""
    ledger = ctx.obj["ledger"]
    settings: Settings = ctx.obj["settings"]
    multisig_pda = _pubkey(multisig)

    ms_account = fetch_program_account(ledger, multisig_pda, settings.program_id, "multisig")
    threshold = decode_multisig(multisig, ms_account.data).threshold

    proposal_pda = get_proposal_pda(multisig_pda, index, settings.program_pubkey)[0]
    account = fetch_program_account(ledger, proposal_pda, settings.program_id, "proposal")
    proposal = decode_proposal(str(proposal_pda), account.data)
    text = format_json(proposal) if format == "json" else format_proposal_table(proposal, threshold)
    _emit(text, output)


def main():
    cli()


if __name__ == "__main__":
    main()
