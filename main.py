from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from config import SAVE_FILE
from game import FactorySim, apply_smart_defaults, calculate_offline_progress


def report_offline(sim: FactorySim, seconds: float) -> None:
    save = sim.save
    progress = calculate_offline_progress(
        save.state, save.meta, save.upgrades, save.prestige, save.meta.last_tick_at + seconds
    )
    produced = ",".join(f"{item}={count}" for item, count in progress.items_produced.items() if count)
    print(
        f"offline_estimate seconds={seconds:.0f} ticks={progress.ticks_simulated} "
        f"earned={progress.currency_earned} efficiency={progress.efficiency:.2f} "
        f"produced[{produced}]"
    )


def run_headless(
    ticks: int,
    seed: int,
    load_path: Optional[Path],
    save_path: Optional[Path],
    auto: bool,
    offline_seconds: Optional[float],
) -> int:
    sim = FactorySim.load(load_path, seed=seed) if load_path is not None else FactorySim(seed)
    if auto:
        sim.save.automation = apply_smart_defaults()

    total = sim.run(ticks)
    state = sim.state

    if offline_seconds is not None:
        report_offline(sim, offline_seconds)

    if save_path is not None:
        result = sim.save_to(save_path)
        if not result.success:
            print(f"Save error: {result.error}", file=sys.stderr)
            return 1

    print(
        f"headless_done tick={state.tick} cash={state.currency} "
        f"buildings={len(state.buildings)} belts={len(state.belts)} ore_nodes={len(state.ore_nodes)} "
        f"run[earned={total.currency_earned},produced={total.items_produced}] "
        f"lifetime[earned={sim.save.meta.total_currency_earned},produced={sim.save.meta.total_items_produced}]"
    )
    for event in state.event_log[-3:]:
        print(f"event: {event}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Forgeworks factory simulation (headless)")
    parser.add_argument("--ticks", type=int, default=600, help="ticks (simulated seconds) to run")
    parser.add_argument("--seed", type=int, default=7, help="random seed for map and customers")
    parser.add_argument(
        "--load", type=Path, nargs="?", const=SAVE_FILE, default=None, help="load a save before running"
    )
    parser.add_argument(
        "--save", type=Path, nargs="?", const=SAVE_FILE, default=None, help="write a save after running"
    )
    parser.add_argument("--auto", action="store_true", help="turn on the build planner with recommended settings")
    parser.add_argument(
        "--offline-seconds", type=float, default=None, help="print what this much time away would earn"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="log diagnostics at INFO level")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if args.ticks < 0:
        print("Startup error: --ticks must be non-negative", file=sys.stderr)
        raise SystemExit(2)

    code = run_headless(args.ticks, args.seed, args.load, args.save, args.auto, args.offline_seconds)
    if code:
        raise SystemExit(code)


if __name__ == "__main__":
    main()
