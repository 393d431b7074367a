"""
Command-line interface for the DID Registry.

The CLI plays the ledger's part: it supplies the caller and height of
every mutating command and keeps state in a JSON file.

Usage:
    did-registry --caller SP1 --height 10 create did:stx:alice
    did-registry show SP1
    did-registry --caller SP2 --height 20 accept-transfer SP1
    did-registry apply operations.json
    curl -s https://example.com/ops.json | did-registry apply -
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, NoReturn

import click
import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from did_registry.config import RegistryConfig
from did_registry.errors import RegistryError, StoreError
from did_registry.models import (
    IdentityRecord,
    LedgerContext,
    PendingTransfer,
    TransferHistoryEntry,
)
from did_registry.registry import DIDRegistry
from did_registry.store import JsonFileStore


console = Console()
err_console = Console(stderr=True)


def configure_logging(verbose: int) -> None:
    """Route log records to stderr through rich."""
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@dataclass
class CLIState:
    """Shared state handed to every command."""

    registry: DIDRegistry
    caller: str | None
    height: int | None
    json_output: bool

    def ledger_context(self) -> LedgerContext:
        if not self.caller:
            fail(self, "--caller is required for this command")
        height = 0 if self.height is None else self.height
        return LedgerContext(caller=self.caller, height=height)


def fail(
    state: CLIState, message: str, code: str | None = None, exit_code: int = 2
) -> NoReturn:
    """Report an error and exit."""
    if state.json_output:
        data: dict[str, Any] = {"error": message}
        if code:
            data["code"] = code
        console.print_json(data=data)
    else:
        prefix = f"[red]Error ({code}):[/]" if code else "[red]Error:[/]"
        console.print(f"{prefix} {escape(message)}")
    sys.exit(exit_code)


def run_operation(state: CLIState, fn: Callable[..., Any], *args: Any) -> Any:
    """Run a mutating registry call with the CLI's ledger context."""
    ctx = state.ledger_context()
    try:
        return fn(ctx, *args)
    except RegistryError as e:
        fail(state, e.message, code=e.code.value, exit_code=1)
    except StoreError as e:
        fail(state, str(e))
    except ValueError as e:
        fail(state, str(e))


def format_record(owner: str, record: IdentityRecord | None) -> None:
    """Print an identity record."""
    if record is None:
        console.print(f"[dim]No DID registered for {escape(owner)}[/]")
        return

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")

    table.add_row("Owner", escape(owner))
    table.add_row("DID", escape(record.did))
    table.add_row("Status", "[green]Active[/]" if record.is_active else "[red]Deactivated[/]")
    if record.revocation_reason:
        table.add_row("Reason", escape(record.revocation_reason))
    table.add_row("Created At", str(record.created_at))
    table.add_row("Updated At", str(record.updated_at))
    table.add_row("Credentials", str(len(record.credentials)))
    for index, credential in enumerate(record.credentials):
        table.add_row(f"  [{index}]", escape(credential))

    border_style = "green" if record.is_active else "red"
    console.print(Panel(table, title="Identity", border_style=border_style))


def format_pending(
    owner: str, pending: PendingTransfer | None, expired: bool | None
) -> None:
    """Print a pending transfer."""
    if pending is None:
        console.print(f"[dim]No pending transfer for {escape(owner)}[/]")
        return

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("From", escape(owner))
    table.add_row("To", escape(pending.new_owner))
    table.add_row("Initiated At", str(pending.initiated_at))
    table.add_row("Expires At", str(pending.expires_at))
    if expired is not None:
        table.add_row("Expired", "[red]Yes[/]" if expired else "[green]No[/]")
    console.print(Panel(table, title="Pending Transfer", border_style="yellow"))


def format_history(owner: str, entries: list[TransferHistoryEntry]) -> None:
    """Print an owner's transfer history."""
    if not entries:
        console.print(f"[dim]No transfer history for {escape(owner)}[/]")
        return

    table = Table(title=f"Transfer History of {escape(owner)}")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Height", justify="right")
    for entry in entries:
        table.add_row(escape(entry.from_owner), escape(entry.to_owner), str(entry.timestamp))
    console.print(table)


def report(state: CLIState, message: str, data: dict[str, Any]) -> None:
    if state.json_output:
        console.print_json(data=data)
    else:
        console.print(f"[green]OK[/] {escape(message)}")


def load_batch(source: str) -> list[dict[str, Any]]:
    """Load a batch of operations from file, URL, or stdin.

    Args:
        source: File path, URL, or "-" for stdin.

    Returns:
        The list of operation entries.
    """
    if source == "-":
        data = json.loads(sys.stdin.read())
    elif source.startswith("http://") or source.startswith("https://"):
        with httpx.Client(timeout=30.0) as client:
            response = client.get(source, headers={"Accept": "application/json"})
            response.raise_for_status()
            data = response.json()
    else:
        path = Path(source)
        if not path.exists():
            raise click.ClickException(f"File not found: {source}")
        with path.open() as f:
            data = json.load(f)

    if isinstance(data, dict):
        data = data.get("operations")
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise ValueError("Batch must be a list of operation objects")
    return data


def apply_entry(registry: DIDRegistry, entry: dict[str, Any]) -> dict[str, Any]:
    """Apply one batch entry and describe the outcome."""
    outcome: dict[str, Any] = {
        "op": entry.get("op"),
        "caller": entry.get("caller"),
        "height": entry.get("height"),
        "ok": False,
        "error": None,
    }
    try:
        ctx = LedgerContext(caller=entry.get("caller"), height=entry.get("height"))
        registry.execute(ctx, str(entry.get("op")), entry.get("args"))
    except RegistryError as e:
        outcome["error"] = e.code.value
    except ValueError as e:
        outcome["error"] = f"invalid: {e}"
    else:
        outcome["ok"] = True
    return outcome


@click.group()
@click.option(
    "--state",
    "state_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default="did-registry.json",
    show_default=True,
    envvar="DID_REGISTRY_STATE",
    help="JSON file holding registry state",
)
@click.option(
    "--caller",
    envvar="DID_REGISTRY_CALLER",
    help="Authenticated principal performing the operation",
)
@click.option(
    "--height",
    type=click.IntRange(min=0),
    default=None,
    envvar="DID_REGISTRY_HEIGHT",
    help="Current ledger height [mutating commands default to 0]",
)
@click.option(
    "--cascade-revoke",
    is_flag=True,
    help="Drop pending transfer and history when a DID is revoked",
)
@click.option(
    "--json-output",
    is_flag=True,
    help="Output results as JSON",
)
@click.option("-v", "--verbose", count=True, help="Increase log verbosity")
@click.version_option(package_name="did-registry")
@click.pass_context
def main(
    ctx: click.Context,
    state_path: Path,
    caller: str | None,
    height: int | None,
    cascade_revoke: bool,
    json_output: bool,
    verbose: int,
) -> None:
    """Manage decentralized identifiers, credentials and transfers."""
    configure_logging(verbose)
    try:
        store = JsonFileStore(state_path)
    except StoreError as e:
        if json_output:
            console.print_json(data={"error": str(e)})
        else:
            console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(2)

    registry = DIDRegistry(store=store, config=RegistryConfig(cascade_revoke=cascade_revoke))
    ctx.obj = CLIState(
        registry=registry,
        caller=caller,
        height=height,
        json_output=json_output,
    )


@main.command()
@click.argument("did")
@click.pass_obj
def create(state: CLIState, did: str) -> None:
    """Register DID for the caller."""
    record = run_operation(state, state.registry.create_did, did)
    report(state, f"Created {record.did}", {"owner": state.caller, **record.to_dict()})


@main.command()
@click.argument("owner")
@click.pass_obj
def show(state: CLIState, owner: str) -> None:
    """Show the identity record of OWNER."""
    record = state.registry.get_did(owner)
    if state.json_output:
        console.print_json(data={"owner": owner, "record": record.to_dict() if record else None})
    else:
        format_record(owner, record)


@main.command()
@click.pass_obj
def revoke(state: CLIState) -> None:
    """Permanently delete the caller's DID."""
    record = run_operation(state, state.registry.revoke_did)
    report(state, f"Revoked {record.did}", {"owner": state.caller, "revoked": record.did})


@main.command("add-credential")
@click.argument("credential")
@click.pass_obj
def add_credential(state: CLIState, credential: str) -> None:
    """Attach CREDENTIAL to the caller's DID."""
    record = run_operation(state, state.registry.add_credential, credential)
    report(
        state,
        f"Credential added ({len(record.credentials)}/{state.registry.config.max_credentials})",
        {"owner": state.caller, "credentials": record.credentials},
    )


@main.command("verify-credential")
@click.argument("owner")
@click.argument("credential")
@click.pass_obj
def verify_credential(state: CLIState, owner: str, credential: str) -> None:
    """Check whether OWNER's active DID holds CREDENTIAL."""
    valid = state.registry.verify_credential(owner, credential)
    if state.json_output:
        console.print_json(data={"owner": owner, "credential": credential, "valid": valid})
    elif valid:
        console.print("[bold green]VALID[/]")
    else:
        console.print("[bold red]INVALID[/]")
    sys.exit(0 if valid else 1)


@main.command()
@click.option("--reason", default=None, help="Why the DID is being deactivated")
@click.pass_obj
def deactivate(state: CLIState, reason: str | None) -> None:
    """Deactivate the caller's DID."""
    record = run_operation(state, state.registry.deactivate_did, reason)
    report(state, f"Deactivated {record.did}", {"owner": state.caller, **record.to_dict()})


@main.command()
@click.pass_obj
def reactivate(state: CLIState) -> None:
    """Reactivate the caller's DID."""
    record = run_operation(state, state.registry.reactivate_did)
    report(state, f"Reactivated {record.did}", {"owner": state.caller, **record.to_dict()})


@main.command()
@click.argument("owner")
@click.pass_obj
def status(state: CLIState, owner: str) -> None:
    """Show whether OWNER's DID is active."""
    active = state.registry.is_did_active(owner)
    if state.json_output:
        console.print_json(data={"owner": owner, "active": active})
    else:
        console.print("[green]Active[/]" if active else "[red]Inactive[/]")


@main.command("initiate-transfer")
@click.argument("new_owner")
@click.pass_obj
def initiate_transfer(state: CLIState, new_owner: str) -> None:
    """Offer the caller's DID to NEW_OWNER."""
    pending = run_operation(state, state.registry.initiate_transfer, new_owner)
    report(
        state,
        f"Transfer to {pending.new_owner} pending until height {pending.expires_at}",
        {"owner": state.caller, **pending.to_dict()},
    )


@main.command("cancel-transfer")
@click.pass_obj
def cancel_transfer(state: CLIState) -> None:
    """Withdraw the caller's pending transfer."""
    pending = run_operation(state, state.registry.cancel_transfer)
    report(
        state,
        f"Transfer to {pending.new_owner} cancelled",
        {"owner": state.caller, "cancelled": pending.to_dict()},
    )


@main.command("accept-transfer")
@click.argument("current_owner")
@click.pass_obj
def accept_transfer(state: CLIState, current_owner: str) -> None:
    """Take over the DID CURRENT_OWNER offered to the caller."""
    record = run_operation(state, state.registry.accept_transfer, current_owner)
    report(
        state,
        f"Now owner of {record.did}",
        {"owner": state.caller, "from": current_owner, **record.to_dict()},
    )


@main.command()
@click.argument("owner")
@click.pass_obj
def pending(state: CLIState, owner: str) -> None:
    """Show the pending transfer initiated by OWNER.

    Expiry is only reported when --height is given.
    """
    transfer = state.registry.get_pending_transfer(owner)
    expired = None
    if state.height is not None:
        expired = state.registry.is_transfer_expired(owner, state.height)
    if state.json_output:
        console.print_json(
            data={
                "owner": owner,
                "pending": transfer.to_dict() if transfer else None,
                "expired": expired,
            }
        )
    else:
        format_pending(owner, transfer, expired)


@main.command()
@click.argument("owner")
@click.pass_obj
def history(state: CLIState, owner: str) -> None:
    """Show the transfers OWNER has received."""
    entries = state.registry.get_transfer_history(owner)
    if state.json_output:
        console.print_json(
            data={"owner": owner, "history": [entry.to_dict() for entry in entries]}
        )
    else:
        format_history(owner, entries)


@main.command()
@click.argument("source")
@click.option(
    "--stop-on-error",
    is_flag=True,
    help="Stop at the first rejected operation",
)
@click.pass_obj
def apply(state: CLIState, source: str, stop_on_error: bool) -> None:
    """Replay a batch of operations.

    SOURCE can be:
    - A file path (e.g., operations.json)
    - A URL (e.g., https://example.com/operations.json)
    - "-" to read from stdin

    Each operation is applied atomically on its own; a rejected
    operation does not undo the ones before it.

    Examples:

        did-registry apply operations.json

        cat operations.json | did-registry apply -
    """
    try:
        entries = load_batch(source)
    except json.JSONDecodeError as e:
        fail(state, f"Invalid JSON: {e}")
    except httpx.HTTPError as e:
        fail(state, f"HTTP error: {e}")
    except ValueError as e:
        fail(state, str(e))

    outcomes: list[dict[str, Any]] = []
    try:
        for entry in entries:
            outcome = apply_entry(state.registry, entry)
            outcomes.append(outcome)
            if stop_on_error and not outcome["ok"]:
                break
    except StoreError as e:
        fail(state, str(e))

    failed = sum(1 for outcome in outcomes if not outcome["ok"])
    if state.json_output:
        console.print_json(
            data={
                "applied": len(outcomes) - failed,
                "failed": failed,
                "results": outcomes,
            }
        )
    else:
        table = Table(title="Batch Results")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Operation")
        table.add_column("Caller")
        table.add_column("Height", justify="right")
        table.add_column("Result")
        for index, outcome in enumerate(outcomes):
            result = "[green]ok[/]" if outcome["ok"] else f"[red]{escape(outcome['error'])}[/]"
            table.add_row(
                str(index),
                escape(str(outcome["op"])),
                escape(str(outcome["caller"])),
                escape(str(outcome["height"])),
                result,
            )
        console.print(table)
        console.print(f"{len(outcomes) - failed} applied, {failed} failed")

    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
