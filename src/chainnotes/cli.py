"""Typer-based CLI for chainnotes."""

import json
import logging
import time
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .errors import ChainNotesError, InvalidTransactionStatusError, NotFoundError, ValidationError
from .models.note import Note
from .models.transaction import IndexedTransaction, TrackedTransaction, TransactionStatus
from .runtime import Runtime

app = typer.Typer(
    name="chainnotes",
    help="chainnotes - ledger-anchored notes with an indexer and transaction sync",
    add_completion=False,
)
indexer_app = typer.Typer(help="Ledger indexer commands")
tx_app = typer.Typer(help="Tracked transaction commands")
notes_app = typer.Typer(help="Local note commands")
app.add_typer(indexer_app, name="indexer")
app.add_typer(tx_app, name="tx")
app.add_typer(notes_app, name="notes")

console = Console()

EXIT_ERROR = 1
EXIT_VALIDATION = 2
EXIT_NOT_FOUND = 3
EXIT_CONFLICT = 4


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=debug, show_path=debug)],
        force=True,
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    db_path: str = typer.Option(
        None,
        "--db",
        help="Path to the SQLite database (default: CHAINNOTES_DB_PATH env or state/chainnotes.sqlite)",
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    _setup_logging(debug)
    ctx.obj = {"db_path": db_path}


def _runtime(ctx: typer.Context) -> Runtime:
    db_path = (ctx.obj or {}).get("db_path")
    try:
        return Runtime.from_env(cli_db_path=db_path)
    except ValueError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(code=EXIT_ERROR)


def _abort(e: ChainNotesError) -> NoReturn:
    """Print a caller-facing error and exit with its mapped code."""
    if isinstance(e, ValidationError):
        code, label = EXIT_VALIDATION, "Invalid input"
    elif isinstance(e, NotFoundError):
        code, label = EXIT_NOT_FOUND, "Not found"
    elif isinstance(e, InvalidTransactionStatusError):
        code, label = EXIT_CONFLICT, "Conflict"
    else:
        code, label = EXIT_ERROR, "Error"
    console.print(f"[red]{label}:[/red] {e}")
    raise typer.Exit(code=code)


def _fmt_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def _short(value: Optional[str], n: int = 16) -> str:
    if not value:
        return "-"
    return value if len(value) <= n else value[: n - 3] + "..."


def _status_style(status: Optional[TransactionStatus]) -> str:
    if status is None:
        return "-"
    color = {
        TransactionStatus.PENDING: "yellow",
        TransactionStatus.MEMPOOL: "cyan",
        TransactionStatus.CONFIRMED: "green",
        TransactionStatus.FAILED: "red",
    }[status]
    return f"[{color}]{status.value}[/{color}]"


def _print_tracked(tx: TrackedTransaction) -> None:
    console.print(f"  [dim]ID:[/dim]           {tx.id}")
    console.print(f"  [dim]Note:[/dim]         {tx.note_id}")
    console.print(f"  [dim]Type:[/dim]         {tx.tx_type.value}")
    console.print(f"  [dim]Status:[/dim]       {_status_style(tx.status)}")
    console.print(f"  [dim]Hash:[/dim]         {tx.tx_hash or '-'}")
    console.print(f"  [dim]Wallet:[/dim]       {tx.wallet_address}")
    console.print(f"  [dim]Retries:[/dim]      {tx.retry_count}")
    if tx.block_height is not None:
        console.print(f"  [dim]Block:[/dim]        {tx.block_height} ({_fmt_time(tx.block_time)} UTC)")
    if tx.error_message:
        console.print(f"  [dim]Error:[/dim]        [red]{tx.error_message}[/red]")


def _tracked_table(title: str, txs: list[TrackedTransaction]) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Note", style="yellow")
    table.add_column("Type", style="magenta")
    table.add_column("Status")
    table.add_column("Hash", style="dim")
    table.add_column("Retries", justify="right")
    table.add_column("Created (UTC)", no_wrap=True)
    for tx in txs:
        table.add_row(
            str(tx.id),
            str(tx.note_id),
            tx.tx_type.value,
            _status_style(tx.status),
            _short(tx.tx_hash),
            str(tx.retry_count),
            _fmt_time(tx.created_at),
        )
    return table


def _indexed_table(title: str, rows: list[IndexedTransaction]) -> Table:
    table = Table(title=title)
    table.add_column("Hash", style="dim")
    table.add_column("Block", justify="right")
    table.add_column("Action", style="magenta")
    table.add_column("Status")
    table.add_column("Note", style="yellow")
    table.add_column("Confirmations", justify="right")
    for row in rows:
        table.add_row(
            _short(row.tx_hash),
            str(row.block_height) if row.block_height is not None else "-",
            row.action_type.value if row.action_type else "-",
            _status_style(row.status),
            f"{row.note_id} {_short(row.note_title, 24)}" if row.note_id else "-",
            str(row.confirmations) if row.confirmations is not None else "-",
        )
    return table


def _notes_table(title: str, notes: list[Note]) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Category", style="magenta")
    table.add_column("Pinned")
    table.add_column("On-chain")
    table.add_column("Status")
    table.add_column("Updated (UTC)", no_wrap=True)
    for note in notes:
        table.add_row(
            str(note.id),
            _short(note.title, 40),
            note.category or "-",
            "yes" if note.is_pinned else "",
            "[green]yes[/green]" if note.on_chain else "no",
            _status_style(note.status),
            _fmt_time(note.updated_at),
        )
    return table


def _require_started(runtime: Runtime) -> None:
    if not runtime.indexer.running and not runtime.start_indexer():
        console.print(f"[red]Indexer could not start:[/red] {runtime.indexer.state.last_error or 'already running'}")
        raise typer.Exit(code=EXIT_ERROR)


# ----------------------------------------------------------------------
# indexer
# ----------------------------------------------------------------------


@indexer_app.command("status")
def indexer_status(ctx: typer.Context):
    """Show indexer, ledger and transaction counters."""
    runtime = _runtime(ctx)
    status = runtime.status()

    console.print("[bold]Indexer Status[/bold]")
    console.print(f"  [dim]Enabled:[/dim]            {status.enabled}")
    console.print(f"  [dim]Running:[/dim]            {status.running}")
    console.print(f"  [dim]Network:[/dim]            {status.network or '-'}")
    console.print(f"  [dim]Ledger:[/dim]             {status.ledger_status}")
    console.print(f"  [dim]Chain height:[/dim]       {status.current_block_height if status.current_block_height is not None else '-'}")
    console.print(f"  [dim]Indexed height:[/dim]     {status.latest_indexed_block}")
    console.print(f"  [dim]Blocks behind:[/dim]      {status.blocks_behind}")
    console.print(f"  [dim]Monitored addrs:[/dim]    {status.monitored_addresses_count}")
    if status.last_error:
        console.print(f"  [dim]Last error:[/dim]         [red]{status.last_error}[/red]")

    table = Table(title="Transactions by Status")
    table.add_column("Status")
    table.add_column("Indexed", justify="right")
    table.add_column("Tracked", justify="right")
    for s in TransactionStatus:
        table.add_row(
            _status_style(s),
            str(status.indexed_by_status.get(s.value, 0)),
            str(status.tracked_by_status.get(s.value, 0)),
        )
    console.print(table)


@indexer_app.command("scan")
def indexer_scan(ctx: typer.Context):
    """Start the indexer and run one scan over the monitored addresses."""
    runtime = _runtime(ctx)
    _require_started(runtime)
    processed = runtime.scan()
    if runtime.indexer.state.last_error:
        console.print(f"[red]Scan failed:[/red] {runtime.indexer.state.last_error}")
        raise typer.Exit(code=EXIT_ERROR)
    console.print(f"[green]Scan complete:[/green] {processed} transaction(s) processed")


@indexer_app.command("reindex")
def indexer_reindex(
    ctx: typer.Context,
    block_height: int = typer.Argument(..., help="Block height to rewind the cursor to"),
):
    """Rewind the cursor to BLOCK_HEIGHT and scan once."""
    runtime = _runtime(ctx)
    _require_started(runtime)
    try:
        processed = runtime.reindex(block_height)
    except ChainNotesError as e:
        _abort(e)
    console.print(f"[green]Reindex from block {block_height} complete:[/green] {processed} transaction(s) processed")


@indexer_app.command("process")
def indexer_process(
    ctx: typer.Context,
    tx_hash: str = typer.Argument(..., help="Transaction hash to index"),
):
    """Index a single transaction by hash."""
    runtime = _runtime(ctx)
    try:
        record = runtime.process_transaction(tx_hash)
    except ChainNotesError as e:
        _abort(e)

    if record is None:
        console.print("[yellow]Nothing indexed: transaction unknown or without note metadata[/yellow]")
        return
    console.print(_indexed_table("Indexed Transaction", [record]))


@indexer_app.command("pending")
def indexer_pending(ctx: typer.Context):
    """Promote indexed rows that have since been confirmed."""
    runtime = _runtime(ctx)
    updated = runtime.update_pending()
    console.print(f"[green]Promoted {updated} indexed transaction(s) to CONFIRMED[/green]")


@indexer_app.command("history")
def indexer_history(
    ctx: typer.Context,
    wallet: str = typer.Option(None, "--wallet", "-w", help="Filter by wallet address"),
    note_id: int = typer.Option(None, "--note", "-n", help="Filter by note id"),
):
    """List indexed transactions for a wallet or a note."""
    runtime = _runtime(ctx)
    if wallet:
        rows = runtime.indexer.transactions_by_wallet(wallet)
        title = f"Indexed Transactions for {_short(wallet, 24)}"
    elif note_id is not None:
        rows = runtime.indexer.note_history(note_id)
        title = f"Indexed Transactions for Note {note_id}"
    else:
        rows = runtime.indexer.pending_transactions()
        title = "Unconfirmed Indexed Transactions"

    if not rows:
        console.print("[dim]No indexed transactions[/dim]")
        return
    console.print(_indexed_table(title, rows))


# ----------------------------------------------------------------------
# tx
# ----------------------------------------------------------------------


@tx_app.command("create")
def tx_create(
    ctx: typer.Context,
    note_id: int = typer.Argument(..., help="Note the transaction mutates"),
    tx_type: str = typer.Argument(..., help="CREATE, UPDATE or DELETE"),
    wallet: str = typer.Argument(..., help="Submitting wallet address"),
    metadata: str = typer.Option(None, "--metadata", "-m", help="Metadata JSON payload"),
    metadata_file: Path = typer.Option(None, "--metadata-file", help="Read the metadata payload from a file"),
):
    """Create a PENDING tracked transaction."""
    runtime = _runtime(ctx)
    if metadata_file is not None:
        try:
            metadata = metadata_file.read_text(encoding="utf-8")
        except OSError as e:
            console.print(f"[red]Error reading metadata file:[/red] {e}")
            raise typer.Exit(code=EXIT_ERROR)

    try:
        tx = runtime.create_transaction(note_id, tx_type, wallet, metadata)
    except ChainNotesError as e:
        _abort(e)

    console.print("[green]Created tracked transaction[/green]")
    _print_tracked(tx)


@tx_app.command("submit")
def tx_submit(
    ctx: typer.Context,
    tx_id: int = typer.Argument(..., help="Tracked transaction id"),
    tx_hash: str = typer.Argument(..., help="64-character ledger transaction hash"),
):
    """Attach the ledger hash and move the transaction to MEMPOOL."""
    runtime = _runtime(ctx)
    try:
        tx = runtime.submit_transaction(tx_id, tx_hash)
    except ChainNotesError as e:
        _abort(e)

    console.print("[green]Transaction submitted[/green]")
    _print_tracked(tx)


@tx_app.command("fail")
def tx_fail(
    ctx: typer.Context,
    tx_id: int = typer.Argument(..., help="Tracked transaction id"),
    reason: str = typer.Option(None, "--reason", "-r", help="Failure reason to store"),
):
    """Mark a PENDING or MEMPOOL transaction as FAILED."""
    runtime = _runtime(ctx)
    try:
        tx = runtime.fail_transaction(tx_id, reason)
    except ChainNotesError as e:
        _abort(e)

    console.print("[yellow]Transaction marked as failed[/yellow]")
    _print_tracked(tx)


@tx_app.command("cancel")
def tx_cancel(
    ctx: typer.Context,
    tx_id: int = typer.Argument(..., help="Tracked transaction id"),
):
    """Delete a PENDING transaction that was never submitted."""
    runtime = _runtime(ctx)
    try:
        runtime.cancel_transaction(tx_id)
    except ChainNotesError as e:
        _abort(e)

    console.print(f"[green]Transaction {tx_id} cancelled[/green]")


@tx_app.command("retry")
def tx_retry(
    ctx: typer.Context,
    tx_id: int = typer.Argument(..., help="Tracked transaction id"),
):
    """Return a FAILED transaction to PENDING."""
    runtime = _runtime(ctx)
    try:
        tx = runtime.retry_transaction(tx_id)
    except ChainNotesError as e:
        _abort(e)

    console.print("[green]Transaction queued for retry[/green]")
    _print_tracked(tx)


@tx_app.command("show")
def tx_show(
    ctx: typer.Context,
    ref: str = typer.Argument(..., help="Tracked transaction id or hash"),
):
    """Show one tracked transaction."""
    runtime = _runtime(ctx)
    try:
        tx = runtime.transactions.get(int(ref)) if ref.isdigit() else runtime.transactions.get_by_hash(ref)
    except ChainNotesError as e:
        _abort(e)

    _print_tracked(tx)
    if tx.metadata_json:
        console.print("  [dim]Metadata:[/dim]")
        try:
            pretty = json.dumps(json.loads(tx.metadata_json), indent=2)
        except json.JSONDecodeError:
            pretty = tx.metadata_json
        for line in pretty.split("\n"):
            console.print(f"    {line}")


@tx_app.command("list")
def tx_list(
    ctx: typer.Context,
    status: str = typer.Option(None, "--status", "-s", help="Filter by status"),
    note_id: int = typer.Option(None, "--note", "-n", help="Filter by note id"),
):
    """List tracked transactions."""
    runtime = _runtime(ctx)
    if note_id is not None:
        txs = runtime.transactions.for_note(note_id)
        title = f"Tracked Transactions for Note {note_id}"
    elif status:
        try:
            wanted = TransactionStatus(status.strip().upper())
        except ValueError:
            console.print(f"[red]Invalid input:[/red] unknown status {status!r}")
            raise typer.Exit(code=EXIT_VALIDATION)
        txs = runtime.transactions.by_status(wanted)
        title = f"{wanted.value} Tracked Transactions"
    else:
        txs = runtime.transactions.by_status(*TransactionStatus)
        title = "Tracked Transactions"

    if not txs:
        console.print("[dim]No tracked transactions[/dim]")
        return
    console.print(_tracked_table(title, txs))


# ----------------------------------------------------------------------
# notes
# ----------------------------------------------------------------------


@notes_app.command("create")
def notes_create(
    ctx: typer.Context,
    title: str = typer.Argument(..., help="Note title"),
    content: str = typer.Option("", "--content", "-c", help="Note content"),
    category: str = typer.Option(None, "--category", help="Note category"),
    pinned: bool = typer.Option(False, "--pinned", help="Pin the note"),
    wallet: str = typer.Option(None, "--wallet", "-w", help="Owning wallet address"),
):
    """Create a local note."""
    runtime = _runtime(ctx)
    try:
        note = runtime.notes.create(title, content, category, pinned, wallet)
    except ChainNotesError as e:
        _abort(e)
    console.print(f"[green]Created note {note.id}:[/green] {note.title}")


@notes_app.command("list")
def notes_list(
    ctx: typer.Context,
    on_chain: bool = typer.Option(False, "--on-chain", help="Only notes currently on the ledger"),
    wallet: str = typer.Option(None, "--wallet", "-w", help="Only notes owned by this wallet"),
):
    """List notes."""
    runtime = _runtime(ctx)
    try:
        notes = runtime.notes.by_wallet(wallet) if wallet else runtime.notes.list_notes(on_chain_only=on_chain)
    except ChainNotesError as e:
        _abort(e)

    if not notes:
        console.print("[dim]No notes[/dim]")
        return
    console.print(_notes_table(f"{len(notes)} Note(s)", notes))


@notes_app.command("search")
def notes_search(
    ctx: typer.Context,
    keyword: str = typer.Argument(..., help="Text to look for in titles and content"),
):
    """Search notes by title and content."""
    runtime = _runtime(ctx)
    notes = runtime.notes.search(keyword)
    if not notes:
        console.print(f"[dim]No notes matching {keyword!r}[/dim]")
        return
    console.print(_notes_table(f"Notes matching {keyword!r}", notes))


@notes_app.command("show")
def notes_show(
    ctx: typer.Context,
    note_id: int = typer.Argument(..., help="Note id"),
):
    """Show a note with its tracked and indexed transaction history."""
    runtime = _runtime(ctx)
    try:
        note, tracked, indexed = runtime.note_with_history(note_id)
    except ChainNotesError as e:
        _abort(e)

    console.print(f"[bold]{note.title}[/bold]")
    console.print(f"  [dim]ID:[/dim]           {note.id}")
    console.print(f"  [dim]Category:[/dim]     {note.category or '-'}")
    console.print(f"  [dim]Pinned:[/dim]       {note.is_pinned}")
    console.print(f"  [dim]Owner:[/dim]        {note.created_by_wallet or '-'}")
    console.print(f"  [dim]On-chain:[/dim]     {note.on_chain}")
    console.print(f"  [dim]Status:[/dim]       {_status_style(note.status)}")
    console.print(f"  [dim]Latest hash:[/dim]  {note.latest_tx_hash or '-'}")
    if note.content:
        console.print()
        console.print(note.content)
    if tracked:
        console.print(_tracked_table("Tracked Transactions", tracked))
    if indexed:
        console.print(_indexed_table("Ledger History", indexed))


@notes_app.command("pin")
def notes_pin(
    ctx: typer.Context,
    note_id: int = typer.Argument(..., help="Note id"),
):
    """Toggle a note's pinned flag."""
    runtime = _runtime(ctx)
    try:
        note = runtime.notes.toggle_pin(note_id)
    except ChainNotesError as e:
        _abort(e)
    console.print(f"Note {note.id} {'pinned' if note.is_pinned else 'unpinned'}")


@notes_app.command("delete")
def notes_delete(
    ctx: typer.Context,
    note_id: int = typer.Argument(..., help="Note id"),
):
    """Delete a note from the local store."""
    runtime = _runtime(ctx)
    try:
        runtime.notes.delete(note_id)
    except ChainNotesError as e:
        _abort(e)
    console.print(f"[green]Deleted note {note_id}[/green]")


# ----------------------------------------------------------------------
# top-level
# ----------------------------------------------------------------------


@app.command()
def sync(ctx: typer.Context):
    """Run one sync sweep over outstanding tracked transactions."""
    runtime = _runtime(ctx)
    summary = runtime.sync()

    table = Table(title="Sync Summary")
    table.add_column("Checked", justify="right")
    table.add_column("Confirmed", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Expired", justify="right", style="red")
    table.add_column("Waiting", justify="right", style="yellow")
    table.add_column("Errors", justify="right")
    table.add_row(
        str(summary.checked),
        str(summary.confirmed),
        str(summary.failed),
        str(summary.expired),
        str(summary.waiting),
        str(summary.errors),
    )
    console.print(table)


@app.command()
def run(ctx: typer.Context):
    """Run the indexer and sync worker on their intervals until interrupted."""
    runtime = _runtime(ctx)
    runtime.start_background()
    console.print(
        f"[green]chainnotes running[/green] "
        f"(scan every {runtime.config.indexer.poll_interval_seconds}s, "
        f"sync every {runtime.config.sync.interval_seconds}s). Press Ctrl+C to stop."
    )
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("[yellow]Stopping...[/yellow]")
    finally:
        runtime.shutdown()


@app.command()
def version():
    """Print the chainnotes version."""
    console.print(f"chainnotes {__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
