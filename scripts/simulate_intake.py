#!/usr/bin/env python3
"""Simulate intake submission and packet generation end-to-end in memory.

Loads the v1/ catalog, submits a sample intake for the chosen client type,
then drains the job queue with a worker pool.  The packet sink can be told
to fail the first few saves so the retry and escalation path is visible.
Time is simulated: retry backoff is skipped by advancing a fake clock.

Usage::

    # Nutrition client, one packet
    python scripts/simulate_intake.py

    # Full program (nutrition + workout), first two saves fail
    python scripts/simulate_intake.py -c FULL_PROGRAM --fail-first 2

    # Print each rendered packet as markdown
    python scripts/simulate_intake.py --show-packets

    # Also write the markdown files to a directory
    python scripts/simulate_intake.py --export-dir /tmp/packets
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_REPO_ROOT / "src"))

from rich.console import Console  # noqa: E402
from rich.markdown import Markdown  # noqa: E402
from rich.table import Table  # noqa: E402

from packet_pipeline.adapters import LoggingNotifier, MemoryPacketSink  # noqa: E402
from packet_pipeline.catalog import CatalogStore  # noqa: E402
from packet_pipeline.errors import IntakeValidationError  # noqa: E402
from packet_pipeline.export import PacketExporter  # noqa: E402
from packet_pipeline.generator import PacketGenerator  # noqa: E402
from packet_pipeline.intake import IntakeService  # noqa: E402
from packet_pipeline.models.job import JobState  # noqa: E402
from packet_pipeline.queue import InMemoryJobStore, JobQueue, RetryPolicy, WorkerPool  # noqa: E402

CLIENT_ID = "sim_client"

# ---------------------------------------------------------------------------
# Sample intakes
# ---------------------------------------------------------------------------

_DEMOGRAPHICS = {
    "full-name": "Jane Doe",
    "email": "jane@example.com",
    "date-of-birth": "1990-05-01",
    "gender": "female",
    "height-inches": 65,
    "weight-lbs": 160,
    "primary-goal": "lose-weight",
    "target-weight": 140,
    "timeline": "6-months",
    "motivation": "I want more energy for my kids",
    "activity-level": "lightly-active",
}

_NUTRITION = {
    "diet-type": "omnivore",
    "meals-per-day": "4-5",
    "food-allergies": ["none"],
    "water-intake-oz": 64,
}

_TRAINING = {
    "training-goal": ["strength", "fat-loss"],
    "training-experience": "intermediate",
    "days-per-week": "4",
    "session-duration": "60",
    "workout-location": ["gym"],
}

SAMPLE_INTAKES: dict[str, dict] = {
    "NUTRITION_ONLY": {**_DEMOGRAPHICS, **_NUTRITION},
    "WORKOUT_ONLY": {**_DEMOGRAPHICS, **_TRAINING},
    "FULL_PROGRAM": {**_DEMOGRAPHICS, **_NUTRITION, **_TRAINING},
}


# ---------------------------------------------------------------------------
# Simulation doubles
# ---------------------------------------------------------------------------


class SimClock:
    """Manually advanced UTC clock."""

    def __init__(self) -> None:
        self.now = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class FlakySink(MemoryPacketSink):
    """Memory sink whose first *fail_first* saves raise."""

    def __init__(self, fail_first: int, export_dir: str | None = None) -> None:
        super().__init__(export_dir=export_dir)
        self.remaining_failures = fail_first

    async def save(self, job, packet):
        if self.remaining_failures > 0:
            self.remaining_failures -= 1
            raise ConnectionError("simulated storage outage")
        return await super().save(job, packet)


# ---------------------------------------------------------------------------
# Main simulation
# ---------------------------------------------------------------------------


async def run_simulation(
    client_type: str,
    fail_first: int,
    max_attempts: int,
    show_packets: bool,
    export_dir: str | None,
    console: Console,
) -> int:
    """Submit one intake and drain the queue; return the process exit code."""
    catalog = CatalogStore()
    catalog.load()

    clock = SimClock()
    notifier = LoggingNotifier()
    store = InMemoryJobStore()
    queue = JobQueue(
        store,
        retry_policy=RetryPolicy(max_attempts=max_attempts),
        notifier=notifier,
        clock=clock,
    )
    intake = IntakeService(catalog, queue)
    sink = FlakySink(fail_first, export_dir=export_dir)
    pool = WorkerPool(queue, PacketGenerator(catalog), sink, notifier, size=1)

    console.rule(f"[bold]Packet simulation: {client_type}")
    responses = SAMPLE_INTAKES[client_type]
    progress = intake.progress(client_type, responses)
    console.print(
        f"  Answered {progress.answered}/{progress.total} visible questions "
        f"across {len(progress.visible_block_ids)} blocks"
    )

    try:
        result = await intake.submit(CLIENT_ID, client_type, responses)
    except IntakeValidationError as exc:
        console.print(f"[red]Intake rejected[/] (first block: {exc.first_error_block_id})")
        for qid, message in exc.errors.items():
            console.print(f"  {qid}: {message}")
        return 1
    console.print(f"  Queued packets: {', '.join(result.job_ids)}")

    # Drain, jumping the clock past each backoff until nothing is left to retry
    rounds = 0
    while True:
        processed = await pool.run_until_idle()
        rounds += 1
        stats = await queue.stats()
        console.print(
            f"  Round {rounds}: processed={processed} pending={stats.pending} "
            f"retry_scheduled={stats.retry_scheduled}"
        )
        if stats.retry_scheduled == 0:
            break
        clock.advance(timedelta(seconds=queue.retry_policy.max_delay))

    table = Table(title="Generation Jobs", show_lines=True)
    table.add_column("Packet", min_width=12)
    table.add_column("State", width=18)
    table.add_column("Attempts", width=9)
    table.add_column("Output / Error", min_width=30)

    failed = False
    for packet_type, job_id in result.job_ids.items():
        job = await queue.get(job_id)
        if job.state == JobState.COMPLETED:
            state_str = "[green]completed[/]"
            detail = job.output_ref or "-"
        else:
            failed = True
            state_str = f"[red]{job.state.value}[/]"
            detail = job.last_error or "-"
        table.add_row(packet_type, state_str, str(job.attempts), detail)
    console.print(table)

    if show_packets:
        exporter = PacketExporter()
        for ref, packet in sink.packets.items():
            console.rule(ref)
            console.print(Markdown(exporter.to_markdown(packet)))

    return 1 if failed else 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Simulate intake submission and packet generation in memory.",
    )
    parser.add_argument(
        "-c", "--client-type",
        default="NUTRITION_ONLY",
        choices=sorted(SAMPLE_INTAKES),
        help="Intake path to submit (default: NUTRITION_ONLY)",
    )
    parser.add_argument(
        "--fail-first",
        type=int,
        default=0,
        help="Number of packet saves that fail before the sink recovers",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=3,
        help="Attempts per job before escalation (default: 3)",
    )
    parser.add_argument(
        "--show-packets",
        action="store_true",
        help="Print each rendered packet as markdown",
    )
    parser.add_argument(
        "--export-dir",
        default=None,
        help="Also write each packet as <client>-<packet>.md into this directory",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress pipeline log output",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.CRITICAL if args.quiet else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    console = Console()
    code = asyncio.run(run_simulation(
        args.client_type,
        args.fail_first,
        args.max_attempts,
        args.show_packets,
        args.export_dir,
        console,
    ))
    sys.exit(code)


if __name__ == "__main__":
    main()
