import argparse
import asyncio
import logging
import time
from pathlib import Path

from .config import load_settings
from .logging_utils import setup_logging
from .loop import write_report
from .report import build_service
from .window import RANGE_KEYWORDS, ReportFilter

logger = logging.getLogger(__name__)


def main() -> None:
    settings = load_settings()
    parser = argparse.ArgumentParser(description="Build one revenue & usage report")
    parser.add_argument("--range", dest="range_keyword", choices=RANGE_KEYWORDS, default="month")
    parser.add_argument("--start", help="Custom range start (ISO date)")
    parser.add_argument("--end", help="Custom range end (ISO date)")
    parser.add_argument("--station", type=int, help="Restrict to one station id")
    parser.add_argument("--region", help="Restrict to one region")
    parser.add_argument("--analytics-url", default=settings.analytics_url)
    parser.add_argument("--api-url", default=settings.api_url)
    parser.add_argument("--payments", type=Path, help="Local JSON file with payments")
    parser.add_argument("--sessions", type=Path, help="Local JSON file with sessions")
    parser.add_argument("--stations", type=Path, help="Local JSON file with stations")
    parser.add_argument("--output", type=Path, default=Path("site/report.json"))
    parser.add_argument(
        "--debug",
        action="store_true",
        default=settings.debug,
        help="Enable debug logging",
    )
    args = parser.parse_args()

    setup_logging(args.debug)

    settings.analytics_url = args.analytics_url
    settings.api_url = args.api_url
    settings.payments_file = args.payments or settings.payments_file
    settings.sessions_file = args.sessions or settings.sessions_file
    settings.stations_file = args.stations or settings.stations_file

    start = time.monotonic()
    service = build_service(settings)
    report_filter = ReportFilter.from_params(
        args.range_keyword, args.start, args.end, args.station, args.region
    )
    model = asyncio.run(service.refresh(report_filter))
    write_report(model, args.output)
    for message in model.suggestions:
        logger.info("Suggestion: %s", message)
    if model.error:
        logger.warning(model.error)
    logger.info(
        "Wrote %s report to %s in %.1fs", model.source, args.output, time.monotonic() - start
    )


if __name__ == "__main__":
    main()
