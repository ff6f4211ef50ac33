import argparse
import datetime as dt
import sys
from pathlib import Path
from typing import List, Optional

repo_root = Path(__file__).resolve().parents[1]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from config.settings import get_settings  # noqa: E402
from snowcone import metrics  # noqa: E402
from snowcone.coerce import parse_warehouse_date  # noqa: E402
from snowcone.dates import DateRange  # noqa: E402
from snowcone.export import export_filename  # noqa: E402
from snowcone.llm import generate_briefing  # noqa: E402
from snowcone.logging_config import configure_logging  # noqa: E402
from snowcone.queries import (  # noqa: E402
    get_daily_sales,
    get_data_date_bounds,
    get_inventory,
    get_locations,
    get_reviews,
)


def _print_status(message: str) -> None:
    print(message, flush=True)


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Print the weekly location scorecard. Exits 1 when any location needs attention."
    )
    parser.add_argument("--days", type=int, default=7, help="Days to score, ending at the latest sale.")
    parser.add_argument("--end", help="Last day to include (YYYY-MM-DD). Defaults to the latest sale.")
    parser.add_argument("--llm", action="store_true", help="Also print the LLM briefing.")
    parser.add_argument("--csv", metavar="DIR", help="Write the scorecard CSV into this directory.")
    return parser.parse_args(argv)


def _resolve_range(days: int, end: Optional[str]) -> DateRange:
    if days < 1:
        raise SystemExit("--days must be at least 1")
    if end:
        end_date = dt.date.fromisoformat(end)
    else:
        bounds = get_data_date_bounds().df
        end_date = parse_warehouse_date(bounds.at[0, "max_date"]) if not bounds.empty else None
        end_date = end_date or dt.date.today()
    return DateRange(end_date - dt.timedelta(days=days - 1), end_date)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level, settings.debug_log_path)

    date_range = _resolve_range(args.days, args.end)
    start, end = date_range.as_params()
    _print_status(f"Scoring locations for {date_range.label()}")

    locations = get_locations().df
    sales = get_daily_sales(start, end).df
    reviews = get_reviews(start, end).df
    inventory = get_inventory(start, end).df
    scores = metrics.compute_location_scores(locations, sales, reviews, inventory, settings)
    waste_scores = metrics.compute_waste_scores(locations, inventory, settings)
    stats = metrics.summary_stats(scores, inventory)

    _print_status(
        f"{len(scores)} locations, revenue ${stats.total_revenue:,.0f}, "
        f"waste ${stats.total_waste_cost:,.0f}, avg rating {stats.avg_rating:.2f}"
    )
    flagged = [s for s in metrics.sort_scorecard(scores, "attention") if s.needs_attention]
    if not flagged:
        _print_status("No locations need attention.")
    for score in flagged:
        _print_status(f"  {score.name}: {', '.join(score.attention_reasons)}")

    if args.csv:
        out_dir = Path(args.csv)
        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / export_filename("weekly_scorecard", "csv", date_range.end)
        metrics.scores_frame(metrics.sort_scorecard(scores, "revenue")).to_csv(path, index=False)
        _print_status(f"Wrote {path}")

    if args.llm:
        _print_status("")
        _print_status(generate_briefing(metrics.briefing_facts(scores, waste_scores), settings))
    return 1 if flagged else 0


if __name__ == "__main__":
    sys.exit(main())
