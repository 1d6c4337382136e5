#!/usr/bin/env python3
"""
workcue-sim: Interactive simulator for testing workcue.

Usage:
    workcue-sim --count 100 --latency 50
    workcue-sim --scenario retrying --count 50 --error-rate 0.3 --retries 4
    workcue-sim --scenario pipeline --workers 2 --concurrent 4 --no-tui
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import random
import signal
import sys
from datetime import datetime

from workcue_sim.display import (
    SimulationState,
    SimulatorDisplay,
    print_final_summary,
    print_simple_stats,
)
from workcue_sim.runner import SimConfig, SimulationRunner
from workcue_sim.scenarios import SCENARIOS, list_scenarios

EVENT_SYMBOLS = {
    "completed": "✓",
    "failed": "✗",
    "started": "▶",
    "queued": "+",
    "retrying": "⟳",
}


def configure_logging(verbose: bool = False) -> None:
    """Configure logging for the simulator."""
    workcue_logger = logging.getLogger("workcue")
    if verbose:
        workcue_logger.setLevel(logging.DEBUG)
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
        workcue_logger.addHandler(handler)
    else:
        # Silence library logs - simulator handles its own display
        workcue_logger.setLevel(logging.CRITICAL)


async def run_with_display(config: SimConfig, use_tui: bool = True, verbose: bool = False) -> SimulationState:
    """Run simulation with visual display.

    Args:
        config: Simulation configuration
        use_tui: Use Rich TUI display (default True)
        verbose: Print event log instead of status updates (implies no-tui)
    """
    state = SimulationState()

    # Verbose mode: print each event as it happens
    if verbose:
        original_add_event = state.add_event

        def logging_add_event(event_type: str, work_id: str, lane: str | None = None, details: str = "") -> None:
            ts = datetime.now().strftime("%H:%M:%S.%f")[:-3]
            symbol = EVENT_SYMBOLS.get(event_type, "·")
            print(f"{ts} {symbol} {event_type:<10} {lane or '':<10} {work_id:<14} {details}")
            original_add_event(event_type, work_id, lane, details)

        state.add_event = logging_add_event  # type: ignore

    runner = SimulationRunner(config, state)

    if verbose:
        print("\nworkcue-sim [verbose]")
        print(f"   Scenario: {config.scenario}, Count: {config.count}")
        print(f"   Latency: {config.latency_ms}ms ±{int(config.latency_jitter*100)}%, Error: {config.error_rate * 100:.0f}%")
        print()
        print(f"{'TIME':<12} {'':1} {'EVENT':<10} {'LANE':<10} {'WORK_ID':<14} DETAILS")
        print("-" * 80)

        try:
            await runner.run()
        except asyncio.CancelledError:
            runner.stop()
            raise

        print("-" * 80)

    elif use_tui:
        display = SimulatorDisplay(state)

        async def update_loop():
            while True:
                display.refresh()
                await asyncio.sleep(0.1)

        with display:
            update_task = asyncio.create_task(update_loop())
            try:
                await runner.run()
            except asyncio.CancelledError:
                runner.stop()
                raise
            finally:
                update_task.cancel()
                try:
                    await update_task
                except asyncio.CancelledError:
                    pass
                display.refresh()
    else:
        print("\nworkcue-sim")
        print(f"   Scenario: {config.scenario}, Count: {config.count}, Latency: {config.latency_ms}ms, Error: {config.error_rate * 100:.0f}%")
        print()

        async def update_loop():
            while True:
                print_simple_stats(state)
                await asyncio.sleep(0.5)

        update_task = asyncio.create_task(update_loop())
        try:
            await runner.run()
        except asyncio.CancelledError:
            runner.stop()
            raise
        finally:
            update_task.cancel()
            try:
                await update_task
            except asyncio.CancelledError:
                pass

        print_simple_stats(state)
        print()  # Newline after progress

    print_final_summary(state)
    return state


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="workcue simulator - drive schedulers and queues with synthetic load",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  workcue-sim --count 100 --latency 50
  workcue-sim --count 1000 --latency 10 --workers 10
  workcue-sim --scenario retrying --error-rate 0.3 --retries 4 --backoff 2
  workcue-sim --scenario pipeline --count 20 --verbose
  workcue-sim --list-scenarios
        """,
    )

    parser.add_argument(
        "--scenario",
        type=str,
        default="scheduler",
        help=f"Scenario to run: {', '.join(SCENARIOS)} (default: scheduler)",
    )
    parser.add_argument(
        "--list-scenarios",
        action="store_true",
        help="List available scenarios and exit",
    )
    parser.add_argument(
        "--count", "-n",
        type=int,
        default=100,
        help="Number of work items to submit (default: 100)",
    )
    parser.add_argument(
        "--latency", "-l",
        type=int,
        default=100,
        help="Base handler latency in ms (default: 100)",
    )
    parser.add_argument(
        "--jitter", "-j",
        type=float,
        default=0.2,
        help="Latency variance as fraction, e.g. 0.2 = ±20%% (default: 0.2)",
    )
    parser.add_argument(
        "--outliers",
        type=float,
        default=0.0,
        help="Chance of outlier (slow) call, 0.0-1.0 (default: 0.0)",
    )
    parser.add_argument(
        "--outlier-mult",
        type=float,
        default=5.0,
        help="Outlier latency multiplier (default: 5.0)",
    )
    parser.add_argument(
        "--error-rate", "-e",
        type=float,
        default=0.0,
        help="Per-attempt failure probability, 0.0-1.0 (default: 0.0)",
    )
    parser.add_argument(
        "--duration", "-d",
        type=float,
        default=None,
        help="Maximum duration in seconds (default: run until complete)",
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=4,
        help="TaskScheduler worker slots (default: 4)",
    )
    parser.add_argument(
        "--concurrent", "-c",
        type=int,
        default=5,
        help="RequestQueue max in-flight requests (default: 5)",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=3,
        help="RequestQueue total attempts per item (default: 3)",
    )
    parser.add_argument(
        "--retry-delay",
        type=float,
        default=0.1,
        help="Seconds between attempts (default: 0.1)",
    )
    parser.add_argument(
        "--backoff",
        type=float,
        default=None,
        help="Multiply the retry delay by this factor after each failure (default: constant)",
    )
    parser.add_argument(
        "--submit-rate", "-s",
        type=float,
        default=None,
        help="Submit rate (work/second), None = batch (default: batch)",
    )
    parser.add_argument(
        "--no-tui",
        action="store_true",
        help="Disable TUI, use simple text output",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Print event log instead of status updates (no-tui)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for reproducible behavior (default: random)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list_scenarios:
        print("\nAvailable scenarios:\n")
        for info in list_scenarios():
            print(f"  {info.name:<15} {info.description}")
        print()
        sys.exit(0)

    if args.scenario not in SCENARIOS:
        parser.error(f"Unknown scenario: {args.scenario}. Available: {', '.join(SCENARIOS)}")

    configure_logging(verbose=args.verbose)

    if args.seed is not None:
        random.seed(args.seed)
        if args.verbose:
            print(f"Random seed: {args.seed}")

    config = SimConfig(
        count=args.count,
        latency_ms=args.latency,
        latency_jitter=args.jitter,
        outlier_chance=args.outliers,
        outlier_multiplier=args.outlier_mult,
        error_rate=args.error_rate,
        duration=args.duration,
        max_workers=args.workers,
        max_concurrent=args.concurrent,
        retry_attempts=args.retries,
        retry_delay=args.retry_delay,
        backoff_factor=args.backoff,
        submit_rate=args.submit_rate,
        scenario=args.scenario,
    )

    async def run_main():
        """Wrapper to handle signals properly."""
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        main_task = asyncio.create_task(
            run_with_display(config, use_tui=not args.no_tui, verbose=args.verbose)
        )
        stop_task = asyncio.create_task(stop_event.wait())

        done, pending = await asyncio.wait(
            [main_task, stop_task],
            return_when=asyncio.FIRST_COMPLETED,
        )

        for task in pending:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if stop_task in done:
            print("\nInterrupted.")
            sys.exit(130)

        # Surface errors from the simulation itself
        main_task.result()

    try:
        asyncio.run(run_main())
    except KeyboardInterrupt:
        print("\nInterrupted.")
        sys.exit(130)


if __name__ == "__main__":
    main()
