"""CLI entry point for vjournal."""

import logging
from datetime import datetime
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import CLUSTER_COUNT, CLUSTER_THRESHOLD, DEFAULT_CONFIG, ClusteringConfig, SearchConfig, load_config
from .models import CONVERSATIONAL, SOLO, DateRange, FolderRules, RuleFolder, parse_timestamp

console = Console()


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=False, show_path=False)],
        force=True,
    )


@click.group()
@click.option("--config", "-c", "config_path", default=None, help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, config_path, verbose):
    """vjournal - organize and search your voice journal by meaning."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _fail(ctx, message: str) -> None:
    console.print(f"[red]{message}[/]")
    ctx.exit(1)


def _get_config(ctx) -> dict:
    if "config" not in ctx.obj:
        try:
            config = load_config(ctx.obj.get("config_path"))
        except yaml.YAMLError as e:
            _fail(ctx, f"Could not read config: {e}")
        _setup_logging("DEBUG" if ctx.obj.get("verbose") else config.get("log_level", "INFO"))
        ctx.obj["config"] = config
    return ctx.obj["config"]


def _get_store(ctx):
    from .storage import StoreError, get_entry_store

    try:
        return get_entry_store(_get_config(ctx))
    except (ValueError, StoreError) as e:
        _fail(ctx, f"Could not open journal: {e}")


def _get_provider(ctx):
    from .embeddings.base import get_embedding_provider

    try:
        return get_embedding_provider(_get_config(ctx))
    except ValueError as e:
        _fail(ctx, str(e))


def _get_manager(ctx, store):
    from .clustering.lifecycle import ClusterLifecycleManager
    from .enrichment.enricher import get_collaborators

    _, labeler = get_collaborators(_get_config(ctx))
    return ClusterLifecycleManager(store, labeler, _get_clustering_config(ctx, store))


def _get_clustering_config(ctx, store) -> ClusteringConfig:
    try:
        return ClusteringConfig.from_config(_get_config(ctx), store)
    except ValueError as e:
        _fail(ctx, f"Bad clustering config: {e}")


def _fmt_date(dt: datetime | None) -> str:
    return dt.strftime("%Y-%m-%d %H:%M") if dt else "never"


def _preview(text: str | None, width: int = 60) -> str:
    return (text or "").replace("\n", " ")[:width]


@cli.command()
@click.option("--path", default=None, help="Custom data directory")
@click.pass_context
def init(ctx, path):
    """Create the data directory, config file and database."""
    from .storage.sqlite import SQLiteEntryStore

    base = Path(path).expanduser().resolve() if path else Path("~/.vjournal").expanduser()
    base.mkdir(parents=True, exist_ok=True)
    console.print(f"[bold green]Initializing vjournal at {base}[/]")

    config_file = base / "config.yaml"
    db_path = base / "journal.db"
    if not config_file.exists():
        cfg = dict(DEFAULT_CONFIG)
        cfg["database_path"] = str(db_path)
        header = (
            "# Claude API key for topics and cluster labels (or set ANTHROPIC_API_KEY env var)\n"
            "# claude_api_key: sk-ant-your-key-here\n\n"
        )
        config_file.write_text(header + yaml.dump(cfg, default_flow_style=False))
        console.print(f"  Created config: {config_file}")

    SQLiteEntryStore(db_path)
    console.print(f"  Database: {db_path}")
    console.print("[bold green]✓ vjournal initialized![/]")


@cli.command()
@click.argument("text")
@click.option("--name", default=None, help="Entry title")
@click.option("--summary", default=None, help="Short summary")
@click.option("--mode", type=click.Choice([SOLO, CONVERSATIONAL]), default=SOLO)
@click.option("--enrich/--no-enrich", default=True, help="Generate embedding and topics after saving")
@click.pass_context
def add(ctx, text, name, summary, mode, enrich):
    """Add a journal entry from transcribed TEXT."""
    from .enrichment.background import EnrichmentWorker
    from .enrichment.enricher import get_collaborators

    config = _get_config(ctx)
    store = _get_store(ctx)
    entry = store.create_entry(mode=mode, transcript=text, summary=summary, name=name)
    console.print(f"[green]✓ Saved entry {entry.id}[/]")

    if not enrich:
        return

    extractor, _ = get_collaborators(config)
    worker = EnrichmentWorker(
        store,
        _get_provider(ctx),
        extractor,
        _get_manager(ctx, store),
        max_chars=config["enrichment"]["max_chars"],
    )
    worker.submit(entry.id, text)
    with console.status("Enriching entry..."):
        worker.join()
    worker.stop()

    refreshed = store.get_entry(entry.id)
    if refreshed and refreshed.embedding is not None:
        topics = ", ".join(refreshed.topics or []) or "none"
        console.print(f"  [dim]Embedded; topics: {topics}[/]")
    else:
        console.print("  [yellow]Enrichment failed; run 'vjournal backfill' later[/]")


@cli.command("list")
@click.option("--oldest-first", is_flag=True, help="Sort ascending by date")
@click.pass_context
def list_entries(ctx, oldest_first):
    """List journal entries."""
    store = _get_store(ctx)
    entries = store.list_entries("date_asc" if oldest_first else "date_desc")
    if not entries:
        console.print("[yellow]No entries yet.[/]")
        return

    table = Table(title="Journal Entries")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Date")
    table.add_column("Name", style="cyan")
    table.add_column("Cluster", justify="right")
    table.add_column("Preview", max_width=60)
    for e in entries:
        table.add_row(
            str(e.id),
            _fmt_date(e.created_at),
            e.name or "",
            "" if e.cluster_id is None else str(e.cluster_id),
            _preview(e.summary or e.transcript),
        )
    console.print(table)


@cli.command()
@click.argument("entry_id", type=int)
@click.pass_context
def show(ctx, entry_id):
    """Show one entry."""
    store = _get_store(ctx)
    entry = store.get_entry(entry_id)
    if entry is None:
        console.print(f"[red]Entry {entry_id} not found[/]")
        return

    console.print(f"[bold]{entry.name or f'Entry {entry.id}'}[/] [dim]({entry.mode}, {_fmt_date(entry.created_at)})[/]")
    if entry.summary:
        console.print(f"\n[bold]Summary:[/] {entry.summary}")
    if entry.topics:
        console.print(f"[bold]Topics:[/] {', '.join(entry.topics)}")
    console.print(f"[bold]Embedding:[/] {'yes' if entry.embedding is not None else 'no'}")
    if entry.transcript:
        console.print(f"\n{entry.transcript}")
    for m in store.get_conversation_messages(entry.id):
        console.print(f"  [cyan]{m.role}:[/] {m.content}")


@cli.command()
@click.argument("entry_id", type=int)
@click.confirmation_option(prompt="Delete this entry?")
@click.pass_context
def delete(ctx, entry_id):
    """Delete an entry and everything derived from it."""
    store = _get_store(ctx)
    store.delete_entry(entry_id)
    console.print(f"[green]✓ Deleted entry {entry_id}[/]")


@cli.command()
@click.argument("query")
@click.option("--mode", type=click.Choice(["hybrid", "semantic", "keyword"]), default=None)
@click.option("--n", "-n", default=None, type=int, help="Maximum results")
@click.option("--min-score", default=None, type=float, help="Drop results scoring below this")
@click.option("--timeout", default=None, type=float, help="Seconds to wait before giving up")
@click.option("--semantic-weight", default=None, type=float, help="Weight of embedding similarity in hybrid mode")
@click.option("--keyword-weight", default=None, type=float, help="Weight of keyword match in hybrid mode")
@click.pass_context
def search(ctx, query, mode, n, min_score, timeout, semantic_weight, keyword_weight):
    """Search entries by meaning and keywords."""
    from .query.search import SearchEngine, SearchError

    config = _get_config(ctx)
    engine = SearchEngine(_get_store(ctx), _get_provider(ctx), SearchConfig.from_config(config))

    overrides = {}
    if n is not None:
        overrides["max_results"] = n
    if min_score is not None:
        overrides["min_score"] = min_score
    if timeout is not None:
        overrides["timeout"] = timeout
    if semantic_weight is not None:
        overrides["semantic_weight"] = semantic_weight
    if keyword_weight is not None:
        overrides["keyword_weight"] = keyword_weight

    console.print(f"[blue]Searching for: '{query}'[/]\n")
    try:
        results = engine.search(query, mode=mode, **overrides)
    except SearchError as e:
        console.print(f"[red]Search failed: {e.__cause__ or e}[/]")
        return

    if not results:
        console.print("[yellow]No results found.[/]")
        return

    table = Table(title="Search Results")
    table.add_column("#", style="dim", width=3)
    table.add_column("ID", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Score", justify="right", style="green")
    table.add_column("Match")
    table.add_column("Preview", max_width=60)
    for i, r in enumerate(results, 1):
        table.add_row(
            str(i),
            str(r.entry.id),
            r.entry.name or "",
            f"{r.score:.3f}",
            "+".join(r.match_types),
            _preview(r.entry.summary or r.entry.transcript),
        )
    console.print(table)


@cli.command()
@click.option("--force", is_flag=True, help="Regenerate even if not enough new entries")
@click.option("-k", "k", default=None, type=click.IntRange(min=1), help="Number of clusters")
@click.pass_context
def cluster(ctx, force, k):
    """Regenerate topic folders from entry embeddings."""
    store = _get_store(ctx)
    manager = _get_manager(ctx, store)

    if not force and not manager.should_trigger():
        console.print("[yellow]Not enough new entries since the last run. Use --force to cluster anyway.[/]")
        return

    console.print("[blue]Running clustering...[/]")
    folders = manager.regenerate(k)
    if not folders:
        console.print("[yellow]No clusters created. Need more embedded entries.[/]")
        return

    console.print(f"[green]✓ Created {len(folders)} folder(s)[/]")
    for f in folders:
        console.print(f"  Cluster {f.cluster_index}: {f.name} ({store.count_entries_in_folder(f)} entries)")


@cli.command()
@click.pass_context
def folders(ctx):
    """List cluster, rule and manual folders."""
    store = _get_store(ctx)
    table = Table(title="Folders")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Kind")
    table.add_column("Name", style="cyan")
    table.add_column("Entries", justify="right")

    for f in [*store.get_smart_folders(), *store.get_manual_folders()]:
        table.add_row(str(f.id), f.kind, f.name, str(store.count_entries_in_folder(f)))
    console.print(table)


@cli.command()
@click.argument("folder_id", type=int)
@click.option("--manual", is_flag=True, help="FOLDER_ID refers to a manual folder")
@click.pass_context
def folder(ctx, folder_id, manual):
    """Show the entries in a folder."""
    store = _get_store(ctx)
    if manual:
        target = next((f for f in store.get_manual_folders() if f.id == folder_id), None)
    else:
        target = store.get_smart_folder(folder_id)
    if target is None:
        console.print(f"[red]Folder {folder_id} not found[/]")
        return

    entries = store.get_entries_in_folder(target)
    console.print(f"[bold]{target.name}[/] [dim]({target.kind}, {len(entries)} entries)[/]")
    for e in entries:
        console.print(f"  {e.id:>4}  {_fmt_date(e.created_at)}  {e.name or _preview(e.summary or e.transcript)}")


@cli.command("rename-folder")
@click.argument("cluster_index", type=int)
@click.argument("name")
@click.pass_context
def rename_folder(ctx, cluster_index, name):
    """Rename the folder for CLUSTER_INDEX (lost on the next regeneration)."""
    store = _get_store(ctx)
    if _get_manager(ctx, store).rename_cluster_folder(cluster_index, name):
        console.print(f"[green]✓ Renamed cluster {cluster_index} to {name}[/]")
    else:
        console.print(f"[red]No folder for cluster {cluster_index}[/]")


@cli.command("rule-folder")
@click.argument("name")
@click.option("--last-days", type=int, default=None, help="Only entries from the last N days")
@click.option("--start", default=None, help="Start of date range (ISO)")
@click.option("--end", default=None, help="End of date range (ISO)")
@click.option("--mode", type=click.Choice([SOLO, CONVERSATIONAL]), default=None)
@click.option("--text", "text_contains", default=None, help="Transcript or summary contains")
@click.option("--topic", "topics", multiple=True, help="Topic contains (repeatable, any matches)")
@click.pass_context
def rule_folder(ctx, name, last_days, start, end, mode, text_contains, topics):
    """Create a rule folder whose membership is computed on demand."""
    date_range = None
    if last_days is not None:
        date_range = DateRange(type="last_n_days", value=last_days)
    elif start or end:
        try:
            date_range = DateRange(type="range", start=parse_timestamp(start), end=parse_timestamp(end))
        except ValueError as e:
            console.print(f"[red]Bad date: {e}[/]")
            return

    rules = FolderRules(date_range=date_range, mode=mode, text_contains=text_contains, topics_contain=list(topics))
    store = _get_store(ctx)
    created: RuleFolder = store.create_rule_folder(name, rules)
    console.print(f"[green]✓ Created rule folder {created.id} ({store.count_entries_in_folder(created)} entries match)[/]")


@cli.command()
@click.pass_context
def backfill(ctx):
    """Embed and tag every entry that has no embedding, then re-cluster."""
    from .enrichment.background import backfill as run_backfill
    from .enrichment.enricher import get_collaborators

    config = _get_config(ctx)
    store = _get_store(ctx)
    extractor, _ = get_collaborators(config)

    report = run_backfill(
        store,
        _get_provider(ctx),
        extractor,
        _get_manager(ctx, store),
        show_progress=True,
        max_chars=config["enrichment"]["max_chars"],
    )
    if report.total == 0:
        console.print("[green]All entries already have embeddings![/]")
        return
    console.print(f"[green]✓ Processed {report.processed}/{report.total} entries[/]")


@cli.command()
@click.pass_context
def stats(ctx):
    """Show clustering statistics."""
    store = _get_store(ctx)
    s = _get_manager(ctx, store).get_stats()

    console.print("\n[bold]📊 Journal Statistics[/]")
    console.print(f"  Total entries: {len(store.list_entries())}")
    console.print(f"  Embedded entries: {s.total_entries_with_embeddings}")
    console.print(f"  Cluster folders: {s.total_clusters}")
    console.print(f"  Last clustered: {_fmt_date(s.last_clustering_date)}")
    for c in sorted(s.clusters, key=lambda c: c.cluster_index):
        console.print(f"    {c.cluster_index}: {c.name} ({c.entry_count})")


@cli.command()
@click.option("--cluster-count", type=click.IntRange(min=1), default=None, help="Target number of clusters")
@click.option("--cluster-threshold", type=click.IntRange(min=1), default=None,
              help="New entries needed before re-clustering")
@click.pass_context
def settings(ctx, cluster_count, cluster_threshold):
    """Show or change clustering settings."""
    store = _get_store(ctx)
    if cluster_count is not None:
        store.set_setting(CLUSTER_COUNT, str(cluster_count))
    if cluster_threshold is not None:
        store.set_setting(CLUSTER_THRESHOLD, str(cluster_threshold))

    cfg = _get_clustering_config(ctx, store)
    console.print(f"  cluster_count: {cfg.cluster_count}")
    console.print(f"  cluster_threshold: {cfg.cluster_threshold}")


if __name__ == "__main__":
    cli()
