#!/usr/bin/env python3
"""
Run one CCA sync invocation from the command line.

Uses the same orchestrator as the HTTP trigger, authenticated with the
configured CRON_SECRET, and prints the summary as a table.

Usage:
    python scripts/run_sync.py              # one bounded invocation
    python scripts/run_sync.py --loop 5     # up to 5 invocations, stops once caught up
    python scripts/run_sync.py --reset 123  # force the checkpoint to block 123
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from clients.functions.sync import SyncError, SyncSummary, build_orchestrator
from config.settings import settings
from database.client import DatabaseError

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

console = Console()


def display_summary(summary: SyncSummary) -> None:
    """Render one invocation summary"""
    table = Table(title="[bold cyan]Sync Summary[/bold cyan]", box=box.ROUNDED, show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white", justify="right")

    block_range = summary.block_range or {}
    rows = [
        ("Message", summary.message),
        ("Block range", f"{block_range.get('from', '-')} - {block_range.get('to', '-')}"),
        ("Blocks scanned", f"{summary.blocks_scanned:,}"),
        ("Chunks", str(summary.chunks_processed)),
        ("New transfers", str(summary.new_transfers)),
        ("Ledger size", "-" if summary.total_transfers_in_db is None else f"{summary.total_transfers_in_db:,}"),
        ("Chain head", "-" if summary.current_block is None else str(summary.current_block)),
        ("Saved block", "-" if summary.saved_block is None else str(summary.saved_block)),
        ("Stopped", summary.stopped_reason or "-"),
        ("Remaining blocks", f"{summary.remaining_blocks:,}"),
        ("Calls remaining (est.)", str(summary.estimated_calls_remaining)),
        ("Aliases checked", str(summary.enriched_wallets)),
    ]
    for field, value in rows:
        table.add_row(field, value)
    console.print(table)

    problems = [p for p in (summary.save_error, summary.aggregation_error) if p]
    if problems:
        console.print(Panel("\n".join(problems), title="[bold red]Warnings[/bold red]", border_style="red"))

    status = "[bold green]caught up[/bold green]" if summary.caught_up else "[bold yellow]behind head[/bold yellow]"
    console.print(f"Status: {status}\n")


async def main() -> int:
    """Main entry point"""
    parser = argparse.ArgumentParser(description="Run CCA USDC contribution sync")
    parser.add_argument("--reset", type=int, default=None, help="Force checkpoint to this block and exit")
    parser.add_argument("--loop", type=int, default=1, help="Max invocations to run back to back")
    args = parser.parse_args()

    console.print(Panel.fit(
        f"CCA contract: {settings.CCA_CONTRACT}\nChunk size: {settings.SYNC_CHUNK_SIZE} blocks, "
        f"max {settings.SYNC_MAX_CHUNKS_PER_CALL} chunks per call",
        title="[bold]CCA USDC Sync[/bold]",
        border_style="cyan",
    ))

    try:
        if args.reset is not None:
            summary = await build_orchestrator(settings).run(settings.CRON_SECRET, reset_block=args.reset)
            console.print(f"[green]Checkpoint reset to block {summary.saved_block}[/green]")
            return 0

        for i in range(max(args.loop, 1)):
            console.rule(f"Invocation {i + 1}")
            summary = await build_orchestrator(settings).run(settings.CRON_SECRET)
            display_summary(summary)
            if summary.caught_up or summary.stopped_reason in ("rate_limited", "provider_error"):
                break

        return 0

    except (SyncError, DatabaseError, ValueError) as e:
        console.print(f"\n[bold red]Sync failed: {type(e).__name__}: {e}[/bold red]\n")
        return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
