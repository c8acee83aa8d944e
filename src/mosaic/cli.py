"""Command-line interface."""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from mosaic.config import load_config
from mosaic.core.runtime import Runtime
from mosaic.engine.interrupt import InterruptReason
from mosaic.errors import InvalidState
from mosaic.hooks.base import HookContext
from mosaic.items.models import (
    WorkItemKind,
    WorkItemPriority,
    WorkItemQuery,
    WorkItemStatus,
    WorkItemTree,
)

console = Console()

STATUS_STYLES = {
    WorkItemStatus.OPEN: "white",
    WorkItemStatus.IN_PROGRESS: "yellow",
    WorkItemStatus.COMPLETED: "green",
    WorkItemStatus.FAILED: "red",
    WorkItemStatus.BLOCKED: "magenta",
}


def _styled_status(status: WorkItemStatus) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


def _render_tree(node: WorkItemTree, parent: Optional[Tree] = None) -> Tree:
    item = node.item
    label = f"{_styled_status(item.status)} [bold]{item.title}[/bold] [dim]{item.id[:8]}[/dim]"
    if item.error_message:
        label += f"\n[red]{item.error_message}[/red]"
    branch = parent.add(label) if parent is not None else Tree(label)
    for child in node.children:
        _render_tree(child, branch)
    return branch


def _print_progress(context: HookContext) -> None:
    data = context.data
    item = data.get("item", {})
    if data.get("old_status") == item.get("status"):
        return
    status = WorkItemStatus(item["status"])
    console.print(f"  {_styled_status(status)} {item.get('title')}")


def _install_sigint_handler(runtime: Runtime) -> None:
    def sigint_handler(_signum, _frame):
        runtime.interrupt.request_interrupt_sync(
            reason=InterruptReason.SIGNAL,
            message="User pressed Ctrl+C",
        )
        runtime.agent.reopen_on_stop = True
        console.print("\n[yellow]Interrupt requested, finishing current step...[/yellow]")

    signal.signal(signal.SIGINT, sigint_handler)


async def _resolve_id(runtime: Runtime, prefix: str) -> str:
    """Accept a full id or an unambiguous prefix."""
    if await runtime.store.get(prefix):
        return prefix
    matches = [i.id for i in await runtime.store.query() if i.id.startswith(prefix)]
    if len(matches) != 1:
        raise click.ClickException(
            f"No work item matches '{prefix}'" if not matches else f"Ambiguous id prefix '{prefix}'"
        )
    return matches[0]


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.pass_context
def main(ctx: click.Context, config_path: Optional[Path]) -> None:
    """mosaic - decompose objectives into work items and execute them."""
    ctx.obj = load_config(config_path)


@main.command()
@click.argument("objective")
@click.option("--description", "-d", default="", help="Longer description of the objective")
@click.option(
    "--kind",
    type=click.Choice([k.value for k in WorkItemKind]),
    default=WorkItemKind.GOAL.value,
    show_default=True,
)
@click.option(
    "--priority",
    type=click.Choice([p.value for p in WorkItemPriority]),
    default=WorkItemPriority.MEDIUM.value,
    show_default=True,
)
@click.option("--tag", "tags", multiple=True, help="Tag to attach (repeatable)")
@click.pass_obj
def run(config: dict, objective: str, description: str, kind: str, priority: str, tags: tuple) -> None:
    """Create a root work item for OBJECTIVE and drive it to completion."""

    async def _run() -> None:
        runtime = Runtime(config)
        await runtime.initialize()
        runtime.hook_engine.subscribe("item.updated", _print_progress)
        _install_sigint_handler(runtime)

        console.print(f"[bold]Objective:[/bold] {objective}")
        root = await runtime.run_objective(
            objective,
            description,
            kind=WorkItemKind(kind),
            priority=WorkItemPriority(priority),
            tags=set(tags),
        )
        tree = await runtime.store.tree(root.id)
        console.print(_render_tree(tree))
        if root.status != WorkItemStatus.COMPLETED:
            sys.exit(1)

    asyncio.run(_run())


@main.command()
@click.argument("item_id")
@click.pass_obj
def resume(config: dict, item_id: str) -> None:
    """Resume a partially executed work item."""

    async def _resume() -> None:
        runtime = Runtime(config)
        await runtime.initialize()
        runtime.hook_engine.subscribe("item.updated", _print_progress)
        _install_sigint_handler(runtime)

        item = await runtime.resume(await _resolve_id(runtime, item_id))
        console.print(_render_tree(await runtime.store.tree(item.id)))
        if item.status != WorkItemStatus.COMPLETED:
            sys.exit(1)

    asyncio.run(_resume())


@main.command()
@click.argument("item_id", required=False)
@click.pass_obj
def tree(config: dict, item_id: Optional[str]) -> None:
    """Show the tree under ITEM_ID, or every root tree."""

    async def _tree() -> None:
        runtime = Runtime(config, setup_logging=False)
        await runtime.store.load_state()
        if item_id:
            roots = [await _resolve_id(runtime, item_id)]
        else:
            roots = [i.id for i in await runtime.store.query(WorkItemQuery(roots_only=True))]
        if not roots:
            console.print("[dim]No work items[/dim]")
        for root_id in roots:
            console.print(_render_tree(await runtime.store.tree(root_id)))

    asyncio.run(_tree())


@main.command(name="list")
@click.option("--status", type=click.Choice([s.value for s in WorkItemStatus]), default=None)
@click.option("--roots", is_flag=True, help="Only root items")
@click.pass_obj
def list_items(config: dict, status: Optional[str], roots: bool) -> None:
    """List work items."""

    async def _list() -> None:
        runtime = Runtime(config, setup_logging=False)
        await runtime.store.load_state()
        query = WorkItemQuery(
            status=WorkItemStatus(status) if status else None, roots_only=roots
        )

        table = Table()
        table.add_column("ID", style="dim")
        table.add_column("Kind")
        table.add_column("Status")
        table.add_column("Priority")
        table.add_column("Title")
        for item in await runtime.store.query(query):
            table.add_row(
                item.id[:8],
                item.kind.value,
                _styled_status(item.status),
                item.priority.value,
                item.title,
            )
        console.print(table)

    asyncio.run(_list())


@main.command()
@click.pass_obj
def stats(config: dict) -> None:
    """Show counts by status and priority."""

    async def _stats() -> None:
        runtime = Runtime(config, setup_logging=False)
        await runtime.store.load_state()
        result = await runtime.store.stats()

        table = Table(title=f"{result.total} work items ({result.roots} roots)")
        table.add_column("Status")
        table.add_column("Count", justify="right")
        for status, count in result.by_status.items():
            table.add_row(_styled_status(WorkItemStatus(status)), str(count))
        console.print(table)

        if result.by_priority:
            console.print(
                "Priority: "
                + ", ".join(f"{name}={count}" for name, count in result.by_priority.items())
            )

    asyncio.run(_stats())


@main.command()
@click.argument("item_id")
@click.pass_obj
def delete(config: dict, item_id: str) -> None:
    """Delete a work item and its sub-items."""

    async def _delete() -> None:
        runtime = Runtime(config, setup_logging=False)
        await runtime.store.load_state()
        resolved = await _resolve_id(runtime, item_id)
        try:
            await runtime.store.delete(resolved)
        except InvalidState as e:
            raise click.ClickException(str(e)) from e
        await runtime.store.save_state()
        console.print(f"[green]Deleted {resolved}[/green]")

    asyncio.run(_delete())


if __name__ == "__main__":
    main()
