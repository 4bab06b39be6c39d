"""
Command-line entry point for the Round Scheduler.
Evaluates a schedule payload against its rules and optionally optimizes it.
"""

import sys
import json
import argparse
from datetime import datetime

from roundscheduler.core.config import DEFAULT_ITERATIONS, SCORE_WEIGHTING
from roundscheduler.core.exceptions import CUSTOM_ERRORS
from roundscheduler.core.logging_config import setup_logging
from roundscheduler.services.loader import load_schedule_payload, create_division_blocks
from roundscheduler.services.neighbors import NeighborGenerator
from roundscheduler.services.optimizer import ScheduleOptimizer
from roundscheduler.services.registry import create_rules_from_configurations, get_default_rules
from roundscheduler.services.scorer import ScheduleScorer, generate_report, get_weight_function
from roundscheduler.services.strategies import STRATEGIES, resolve_strategy
from roundscheduler.models import Schedule


def print_progress(progress):
    print(f"  iteration {progress.iteration:>6}  ({progress.progress:6.1%})  "
          f"current {progress.current_score:>8}  best {progress.best_score:>8}  "
          f"T={progress.temperature:.3f}")


def main():
    """
    Main function to run the scheduler from the command line.
    Loads a JSON payload, evaluates it, optionally optimizes and writes the result.
    """
    parser = argparse.ArgumentParser(
        description='Round Scheduler - score and optimize tournament schedules'
    )
    parser.add_argument('payload', help='JSON file with players, matches and optional rules')
    parser.add_argument(
        '--iterations', type=int, default=DEFAULT_ITERATIONS,
        help='Optimization iterations (0 only evaluates)'
    )
    parser.add_argument('--strategy', default=None, help=f"One of: {', '.join(STRATEGIES)}")
    parser.add_argument('--seed', type=int, default=None, help='Random seed for reproducible runs')
    parser.add_argument(
        '--weighting', default=SCORE_WEIGHTING,
        help='Score weighting: linear, squared or exponential'
    )
    parser.add_argument(
        '--blocks', default=None,
        help='Reorder into division blocks first, e.g. "mixed,gendered,cloth"'
    )
    parser.add_argument('--output', default=None, help='Write the resulting schedule as JSON')
    parser.add_argument('--verbose', action='store_true', help='Enable verbose output')

    args = parser.parse_args()
    setup_logging("DEBUG" if args.verbose else None)

    print("\n" + "=" * 80)
    print("ROUND SCHEDULER")
    print("=" * 80)
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 80)

    try:
        # Step 1: Load the schedule
        print("\n[STEP 1] Loading schedule...")
        with open(args.payload, encoding="utf-8") as f:
            payload = json.load(f)
        _, schedule = load_schedule_payload(payload)
        if not schedule.matches:
            print("ERROR: No matches loaded. Please check the payload.")
            return 1
        if args.blocks:
            schedule = Schedule(matches=create_division_blocks(schedule.matches, args.blocks))

        rule_configs = payload.get("rules")
        rules = create_rules_from_configurations(rule_configs) if rule_configs is not None else get_default_rules()
        print(f"  - {len(schedule.matches)} matches")
        print(f"  - {len(rules)} rules")

        # Step 2: Evaluate
        print("\n[STEP 2] Evaluating schedule...")
        scorer = ScheduleScorer(get_weight_function(args.weighting))
        result = scorer.evaluate(schedule, rules)
        print(result.get_summary())
        for warning in result.warnings:
            print(f"WARNING: {warning}")

        # Step 3: Optimize
        if args.iterations > 0:
            strategy = resolve_strategy(args.strategy)
            print(f"\n[STEP 3] Optimizing with {strategy.name} for {args.iterations} iterations...")
            optimizer = ScheduleOptimizer(scorer=scorer, seed=args.seed)
            optimizer.generator = NeighborGenerator(
                time_slots=payload.get("time_slots"), fields=payload.get("fields"), rng=optimizer.rng
            )
            schedule = optimizer.run_sync(
                schedule, rules, args.iterations, strategy,
                on_progress=print_progress if args.verbose else None
            )
        else:
            print("\n[STEP 3] Skipping optimization (--iterations 0)")

        # Step 4: Report
        print("\n" + generate_report(schedule))

        if args.output:
            with open(args.output, "w", encoding="utf-8") as f:
                json.dump(schedule.to_dict(), f, indent=2)
            print(f"\nSchedule written to {args.output}")

        return 0

    except KeyboardInterrupt:
        print("\n\nOptimization interrupted by user.")
        return 1

    except (OSError, json.JSONDecodeError) as e:
        print(f"\nERROR: Could not read {args.payload}: {e}")
        return 1

    except tuple(CUSTOM_ERRORS) as e:
        print(f"\nERROR: {type(e).__name__}: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
