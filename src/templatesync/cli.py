"""Command line interface for TemplateSync."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from templatesync.config import AppConfig
from templatesync.errors import FrontmatterError
from templatesync.models import MetaRecord, record_from_python
from templatesync.sync.differ import diff as compute_diff
from templatesync.sync.dispatcher import EventDispatcher
from templatesync.sync.propagator import TemplatePropagator
from templatesync.vault.frontmatter import split_frontmatter
from templatesync.vault.store import FileVault
from templatesync.vault.watcher import VaultWatcher


console = Console()
app = typer.Typer(help="TemplateSync - propagate template frontmatter changes to linked notes")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _notify(message: str) -> None:
    console.print(f"[green]{message}[/green]")


def _read_frontmatter(path: Path) -> MetaRecord:
    try:
        data, _ = split_frontmatter(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise typer.BadParameter(f"Cannot read {path}: {exc}") from exc
    except FrontmatterError as exc:
        raise typer.BadParameter(f"{path}: {exc}") from exc
    try:
        return record_from_python(data or {})
    except TypeError as exc:
        raise typer.BadParameter(f"{path}: {exc}") from exc


def _open_vault(vault: Path, config: AppConfig) -> FileVault:
    if not vault.is_dir():
        raise typer.BadParameter(f"Vault not found: {vault}")
    store = FileVault(vault, config=config, notifier=_notify)
    store.scan()
    return store


def _resolve_template(store: FileVault, template: str) -> str:
    doc_id = store.resolve_link(template, "")
    if doc_id is None:
        raise typer.BadParameter(f"Template not found in vault: {template}")
    return doc_id


def _linked_notes(store: FileVault, propagator: TemplatePropagator, template_id: str) -> list[str]:
    return [
        doc_id
        for doc_id in asyncio.run(store.get_dependents(template_id))
        if propagator.links_to_template(doc_id, template_id)
    ]


@app.command()
def watch(
    vault: Path = typer.Argument(..., help="Vault directory", resolve_path=True),
    debounce: int = typer.Option(AppConfig().debounce_ms, help="Milliseconds to group file changes"),
    polling: bool = typer.Option(False, "--polling", help="Poll the file system instead of using OS events"),
    config_dir: str = typer.Option(AppConfig().config_dir, help="Vault config directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Watch a vault and propagate template frontmatter changes."""
    _setup_logging(verbose)
    config = AppConfig(config_dir=config_dir, debounce_ms=debounce, force_polling=polling)
    store = _open_vault(vault, config)
    console.print(f"Watching [bold]{vault}[/bold] ({len(store.notes)} notes)...")

    try:
        asyncio.run(_watch(store, config))
    except KeyboardInterrupt:
        console.print("Stopped.")


async def _watch(store: FileVault, config: AppConfig) -> None:
    propagator = TemplatePropagator(store, template_field=config.template_field)
    dispatcher = EventDispatcher(propagator.handle)
    dispatcher.start()
    try:
        watcher = VaultWatcher(
            store, dispatcher, debounce_ms=config.debounce_ms, force_polling=config.force_polling
        )
        await watcher.run()
    finally:
        await dispatcher.stop()


@app.command()
def diff(
    old: Path = typer.Argument(..., help="Note with the previous frontmatter", exists=True),
    new: Path = typer.Argument(..., help="Note with the new frontmatter", exists=True),
    as_json: bool = typer.Option(False, "--json", help="Print the diff as JSON"),
) -> None:
    """Show the frontmatter difference between two notes."""
    change = compute_diff(_read_frontmatter(old), _read_frontmatter(new))

    if as_json:
        typer.echo(json.dumps(change.to_python(), indent=2, default=str))
        return

    if change.is_empty():
        console.print("[yellow]Frontmatter is identical.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Change")
    table.add_column("Key")
    table.add_column("Value")
    for section, key, value in change.changes():
        table.add_row(section, key, "" if section == "deleted" else json.dumps(value, default=str))
    console.print(table)


@app.command()
def dependents(
    vault: Path = typer.Argument(..., help="Vault directory", resolve_path=True),
    template: str = typer.Argument(..., help="Template note, as a path or link"),
    config_dir: str = typer.Option(AppConfig().config_dir, help="Vault config directory"),
) -> None:
    """List notes whose template field points at TEMPLATE."""
    config = AppConfig(config_dir=config_dir)
    store = _open_vault(vault, config)
    template_id = _resolve_template(store, template)
    propagator = TemplatePropagator(store, template_field=config.template_field)

    linked = _linked_notes(store, propagator, template_id)
    if not linked:
        console.print(f"[yellow]No notes use {template_id}.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Note")
    for doc_id in linked:
        table.add_row(doc_id)
    console.print(table)


@app.command()
def propagate(
    vault: Path = typer.Argument(..., help="Vault directory", resolve_path=True),
    template: str = typer.Argument(..., help="Template note, as a path or link"),
    baseline: Path = typer.Option(..., "--baseline", help="Note holding the frontmatter to diff against", exists=True),
    config_dir: str = typer.Option(AppConfig().config_dir, help="Vault config directory"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only list the notes that would change"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Apply the change from BASELINE to TEMPLATE's frontmatter onto its dependents."""
    _setup_logging(verbose)
    config = AppConfig(config_dir=config_dir)
    store = _open_vault(vault, config)
    template_id = _resolve_template(store, template)

    current = store.get_metadata(template_id)
    if current is None:
        console.print(f"[yellow]{template_id} has no frontmatter.[/yellow]")
        return

    change = compute_diff(_read_frontmatter(baseline), current)
    if change.is_empty():
        console.print("[yellow]No frontmatter changes to propagate.[/yellow]")
        return

    propagator = TemplatePropagator(store, template_field=config.template_field)
    if dry_run:
        linked = _linked_notes(store, propagator, template_id)
        console.print(f"Would update {len(linked)} file(s): {', '.join(linked) or '-'}")
        return

    stats = asyncio.run(propagator.propagate(template_id, change))
    console.print(
        f"Updated: {stats.updated}, skipped: {stats.skipped}, failed: {stats.failed}"
    )
