#!/usr/bin/env python3
"""
Database and task management script for the task rewards backend.
"""

import asyncio
import sys
from pathlib import Path

# Add the backend root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

import typer
from rich.console import Console
from rich.table import Table

from rewards.core.database import init_database, close_database, get_async_session, DatabaseManager
from rewards.core.exceptions import RewardsError
from rewards.core.logging import setup_logging, get_logger
from rewards.services.allocation_service import AllocationService
from rewards.services.catalog_import import load_products_file, import_products

console = Console()
logger = get_logger(__name__)
app = typer.Typer(help="Database and task management commands")


@app.command()
def init():
    """Initialize database with tables."""
    async def _init():
        setup_logging()
        await init_database()
        await DatabaseManager.create_tables()
        await close_database()
        console.print("✅ Database initialized successfully!")

    asyncio.run(_init())


@app.command()
def drop():
    """Drop all tables."""
    confirm = typer.confirm("Are you sure you want to drop all tables?")
    if not confirm:
        console.print("❌ Operation cancelled")
        return

    async def _drop():
        setup_logging()
        await init_database()
        await DatabaseManager.drop_tables()
        await close_database()
        console.print("🗑️ All tables dropped!")

    asyncio.run(_drop())


@app.command()
def health():
    """Check database health."""
    async def _health() -> bool:
        setup_logging()
        await init_database()
        try:
            return await DatabaseManager.health_check()
        finally:
            await close_database()

    if asyncio.run(_health()):
        console.print("✅ Database is healthy!")
    else:
        console.print("❌ Database health check failed!")
        raise typer.Exit(code=1)


@app.command("import-products")
def import_products_command(file: Path = typer.Argument(..., help="JSON file with products")):
    """Upsert catalog products from a JSON file."""
    try:
        records = load_products_file(file)
    except RewardsError as e:
        console.print(f"❌ {e.message}: {e.details}")
        raise typer.Exit(code=1)

    async def _import():
        setup_logging()
        await init_database()
        try:
            async with get_async_session() as session:
                return await import_products(session, records)
        finally:
            await close_database()

    summary = asyncio.run(_import())
    console.print(f"✅ Imported {summary.total} products ({summary.created} new, {summary.updated} updated)")


@app.command()
def assign(
    user_id: str = typer.Argument(..., help="User to allocate tasks for"),
    policy: str = typer.Option(None, help="random or price_banded")
):
    """Allocate a daily task batch and print it."""
    async def _assign():
        setup_logging()
        await init_database()
        try:
            async with get_async_session() as session:
                return await AllocationService(session).allocate(user_id, policy)
        finally:
            await close_database()

    try:
        result = asyncio.run(_assign())
    except RewardsError as e:
        console.print(f"❌ {e.code}: {e.message}")
        raise typer.Exit(code=1)

    table = Table(title=f"Tasks for {user_id}")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Product", style="white")
    table.add_column("Price", style="green", justify="right")
    for task in result.tasks:
        table.add_row(str(task.task_number), task.product_id, f"{task.product_price:.2f}")

    console.print(table)
    console.print(
        f"Total {result.total_price:.2f}, average {result.average_price:.2f}, "
        f"band satisfied: {result.band_satisfied}, fallback: {result.used_fallback}"
    )


@app.command()
def stats(user_id: str = typer.Argument(..., help="User to report on")):
    """Show task counts and earnings of a user."""
    async def _stats():
        setup_logging()
        await init_database()
        try:
            async with get_async_session() as session:
                service = AllocationService(session)
                return await service.stats(user_id), await service.earnings(user_id)
        finally:
            await close_database()

    try:
        counts, earnings = asyncio.run(_stats())
    except RewardsError as e:
        console.print(f"❌ {e.code}: {e.message}")
        raise typer.Exit(code=1)

    table = Table(title=f"User {user_id}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Total tasks", str(counts.total))
    table.add_row("Completed", str(counts.completed))
    table.add_row("Pending", str(counts.pending))
    table.add_row("Balance", f"{earnings.balance:.4f}")
    table.add_row("Total earnings", f"{earnings.total_earnings:.4f}")
    table.add_row("Today's earnings", f"{earnings.todays_earnings:.4f}")

    console.print(table)


if __name__ == "__main__":
    app()
