import argparse
import logging
import os

from dotenv import load_dotenv

from lead_harvest.harvest import (
    HarvestConfig,
    ProgressEvent,
    QuotaExceeded,
    SearchRequest,
    ServiceFailure,
    run_lead_harvest_workflow,
    write_leads_csv,
)
from lead_harvest.harvest.run_csv_batch import run_lead_harvest_workflow_csv
from lead_harvest.infra.langfuse_observation import trace_context

ZERO_RESULTS_MESSAGE = (
    "Zero records found across all segments. Try a broader search term."
)


def print_progress(event: ProgressEvent) -> None:
    if event.kind == "phase_started":
        print(f"[{event.phase_index}/{event.phase_count}] Scanning: {event.label}...")
    else:
        print(
            f"[{event.phase_index}/{event.phase_count}] Done: {event.label} "
            f"({event.running_total} leads so far)"
        )


def register_search(parser: argparse.ArgumentParser) -> None:
    """
    Harvest leads for one query
    """
    parser.add_argument("query", type=str, help="e.g. 'IT companies in Ahmedabad'")
    parser.add_argument(
        "--mode",
        choices=["parallel", "deep", "single"],
        default=None,
        help="parallel: 3 concurrent segments, deep: 4 sequential phases, single: one call",
    )
    parser.add_argument(
        "--modifier",
        action="append",
        default=[],
        help="Custom segment modifier (repeatable); replaces the preset segments",
    )
    parser.add_argument("--csv", type=str, default=None, help="Write leads to this CSV file")
    parser.add_argument(
        "--allow-missing-phone",
        action="store_true",
        help="Keep leads without a phone number",
    )
    parser.add_argument(
        "--session_id",
        type=str,
        default=None,
        help="Langfuse Session ID for trace correlation",
    )

    def func(args: argparse.Namespace) -> int:
        config = HarvestConfig.from_env(args.mode)
        if args.allow_missing_phone:
            config = config.model_copy(update={"phone_required": False})

        try:
            result = run_lead_harvest_workflow(
                SearchRequest(query=args.query, modifiers=args.modifier),
                config,
                on_progress=print_progress,
                span_context=trace_context(
                    "lead_harvest_cli",
                    session_id=args.session_id,
                    metadata={"query": args.query, "mode": args.mode},
                ),
            )
        except QuotaExceeded as e:
            print(str(e))
            return 2
        except ServiceFailure as e:
            print(f"Search failed: {e}")
            return 1

        print(result.model_dump_json(indent=2))
        for failure in result.failures:
            print(f"Segment '{failure.label}' contributed nothing ({failure.kind}): {failure.message}")
        if result.count == 0:
            print(ZERO_RESULTS_MESSAGE)
        elif args.csv:
            path = write_leads_csv(result.leads, args.csv)
            print(f"Exported {result.count} leads to {path}")
        return 0

    parser.set_defaults(func=func)


def register_batch(parser: argparse.ArgumentParser) -> None:
    """
    Harvest leads for every query in a CSV file
    """
    parser.add_argument("csv_path", type=str, help="CSV with a 'query' column")
    parser.add_argument("--output", type=str, default=None, help="JSON Lines output path")
    parser.add_argument("--mode", choices=["parallel", "deep", "single"], default=None)
    parser.add_argument("--session_id", type=str, default=None)

    def func(args: argparse.Namespace) -> int:
        run_lead_harvest_workflow_csv(
            args.csv_path,
            output_path=args.output,
            session_id=args.session_id,
            config=HarvestConfig.from_env(args.mode),
        )
        return 0

    parser.set_defaults(func=func)


def build_parser() -> argparse.ArgumentParser:
    """
    Define the CLI commands
    """
    parser = argparse.ArgumentParser(description="Search-grounded business lead harvester")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_search(subparsers.add_parser("search", help="Harvest leads for a query"))
    register_batch(
        subparsers.add_parser("batch", help="Harvest leads for queries listed in a CSV")
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
