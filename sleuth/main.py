"""Sleuth CLI — developer surface for the research pipeline.

Commands:
    sleuth research  — Run a research query end to end
    sleuth trace     — View the Synapse trace of a run
    sleuth memory    — Show the stored memory for a session
    sleuth config    — Show effective settings
"""

from __future__ import annotations

import asyncio

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from sleuth.config import settings
from sleuth.errors import ResearchError
from sleuth.utils import setup_logging, short_id

# Initialize logging on import
setup_logging()

app = typer.Typer(
    name="sleuth",
    help="🔎 Sleuth — multi-agent research orchestration",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()


def _get_synapse():
    """Get or create the CLI's SynapseEventBus."""
    from sleuth.models.synapse import SynapseEventBus
    if not hasattr(_get_synapse, "_bus"):
        _get_synapse._bus = SynapseEventBus(persist=settings.persist_traces)
    return _get_synapse._bus


def _parse_context(pairs: list[str]) -> dict[str, str]:
    context: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected key=value, got {pair!r}", param_hint="--context")
        context[key.strip()] = value.strip()
    return context


# ── sleuth research ───────────────────────────────────────────


@app.command()
def research(
    query: str = typer.Argument(..., help="The research question"),
    session: str = typer.Option(None, "--session", "-s", help="Session ID (new one if omitted)"),
    user: str = typer.Option(None, "--user", "-u", help="User ID"),
    context: list[str] = typer.Option([], "--context", "-c", help="Extra context as key=value"),
):
    """🔎 Run a research query: plan, search, analyze, verify, synthesize."""
    extra = _parse_context(context)
    session_id = session or short_id()
    try:
        asyncio.run(_research(session_id, query, extra, user))
    except ValidationError as exc:
        console.print(f"[red]Invalid request:[/] {exc.errors()[0]['msg']}")
        raise typer.Exit(code=2)
    except ResearchError as exc:
        phase = exc.phase.value if exc.phase else "?"
        console.print(f"[red]Research failed during {phase}:[/] {exc.message}")
        raise typer.Exit(code=1)


async def _research(session_id: str, query: str, context: dict[str, str], user_id: str | None):
    from sleuth.research.service import start_research

    synapse = _get_synapse()
    console.print(f"[dim]Session: {session_id} | Model: {settings.llm_model}[/]\n")

    with console.status("[dim]Researching...[/]", spinner="dots"):
        summary = await start_research(
            session_id, query, context, user_id=user_id, synapse=synapse
        )

    console.print(Panel(
        Markdown(summary.report),
        title=f"[bold green]📄 {query[:60]}[/]",
        border_style="green",
    ))
    recent = synapse.get_recent_traces(limit=1)
    trace_id = recent[0].correlation_id if recent else "?"
    console.print(
        f"[dim]Findings: {summary.findings_count} | "
        f"Citations: {summary.citations_count} | "
        f"Duration: {summary.execution_time_ms:.0f}ms | "
        f"Trace ID: [bold]{trace_id}[/][/]"
    )


# ── sleuth trace ──────────────────────────────────────────────


def _event_detail(event) -> str:
    """One short line describing what an event carried."""
    if event.error:
        return f"[red]{event.error[:70]}[/]"
    payload = event.payload
    if event.event_type == "phase":
        return f"{payload.get('phase')} [dim]({payload.get('progress')}%)[/]"
    if event.event_type == "batch_dispatch":
        return f"batch {payload.get('batch')} · {payload.get('size')} task(s)"
    if event.event_type == "stale_findings":
        return f"[yellow]{payload.get('count')} stale prior finding(s)[/]"
    if event.event_type == "egress":
        return f"{payload.get('findings')} findings · {payload.get('citations')} citations"
    for key in ("description", "query"):
        if key in payload:
            return f"[dim]{str(payload[key])[:70]}[/]"
    return ""


def _print_run(t) -> None:
    status = "[green]completed[/]" if t.success else "[red]failed[/]"
    when = t.started_at.strftime("%Y-%m-%d %H:%M:%S") if t.started_at else "?"
    console.print(Panel(
        f"[bold]Run:[/] {t.correlation_id}   {status}\n"
        f"[bold]Started:[/] {when}   [bold]Took:[/] {t.total_duration_ms:.0f}ms\n"
        f"[bold]Phases:[/] {' → '.join(t.phases) or '—'}\n"
        f"[bold]Workers:[/] {', '.join(t.workers_used) or '—'}",
        title="[bold blue]🔍 Research run[/]",
        border_style="blue",
    ))

    events = Table(show_lines=False)
    events.add_column("+ms", style="dim", justify="right")
    events.add_column("Event", style="cyan")
    events.add_column("From", style="green")
    events.add_column("Detail")
    for event in t.events:
        offset = (event.timestamp - t.started_at).total_seconds() * 1000 if t.started_at else 0.0
        events.add_row(f"{offset:.0f}", event.event_type, event.source, _event_detail(event))
    console.print(events)


@app.command()
def trace(
    run_id: str = typer.Argument(None, help="Run ID. Omit to list recent runs on disk."),
):
    """🔍 Show the event trail of a research run."""
    synapse = _get_synapse()

    if run_id:
        t = synapse.get_trace(run_id)
        if t.events:
            _print_run(t)
        else:
            console.print(f"[yellow]No trace found for: {run_id}[/]")
        return

    run_ids = synapse.list_traces(limit=15)
    if not run_ids:
        console.print(f"[yellow]No traces under {settings.trace_dir}. Run 'sleuth research' first.[/]")
        return

    runs = Table(title="Recent research runs")
    runs.add_column("Run ID", style="cyan")
    runs.add_column("Reached", style="magenta")
    runs.add_column("Workers", justify="right")
    runs.add_column("Took", style="yellow", justify="right")
    runs.add_column("OK", justify="center")
    for rid in run_ids:
        t = synapse.get_trace(rid)
        runs.add_row(
            rid,
            t.last_phase or "—",
            str(len(t.workers_used)),
            f"{t.total_duration_ms:.0f}ms",
            "✅" if t.success else "❌",
        )
    console.print(runs)
    console.print("[dim]sleuth trace <run_id> shows every event of one run[/]")


# ── sleuth memory ─────────────────────────────────────────────


@app.command()
def memory(
    session_id: str = typer.Argument(..., help="Session ID"),
):
    """🧠 Show the stored short- and long-term memory of a session.

    Needs SLEUTH_STORE_BACKEND=redis: the default in-memory store does not
    outlive the process that ran the research.
    """
    asyncio.run(_memory(session_id))


async def _memory(session_id: str):
    from sleuth.research.store import build_store

    store = build_store()
    try:
        record = await store.get_memory(session_id)
    finally:
        await store.close()

    if record is None:
        console.print(
            f"[yellow]No memory stored for session {session_id} "
            f"(store backend: {settings.store_backend})[/]"
        )
        if settings.store_backend.lower() == "memory":
            console.print(
                "[dim]The in-memory store only lives for one process. "
                "Set SLEUTH_STORE_BACKEND=redis to keep memory between runs.[/]"
            )
        return

    updated = record.last_updated.strftime("%Y-%m-%d %H:%M UTC")
    console.print(Panel(
        record.short_term or "[dim](empty)[/]",
        title="[bold cyan]Short-term[/]",
        border_style="cyan",
    ))
    console.print(Panel(
        record.long_term or "[dim](empty)[/]",
        title="[bold magenta]Long-term[/]",
        border_style="magenta",
    ))
    console.print(f"[dim]Last updated: {updated}[/]")


# ── sleuth config ─────────────────────────────────────────────


@app.command(name="config")
def show_config():
    """⚙ Show effective settings (API key masked)."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")

    for name, value in settings.model_dump().items():
        if name == "llm_api_key" and value:
            value = f"{value[:4]}…" if len(value) > 8 else "••••"
        table.add_row(name, str(value))

    console.print(Panel(table, title="[bold cyan]⚙ Sleuth Settings[/]", border_style="cyan"))


# ── Entry point ───────────────────────────────────────────────

if __name__ == "__main__":
    app()
