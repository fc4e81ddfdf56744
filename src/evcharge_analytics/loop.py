import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Callable

from .config import load_settings
from .logging_utils import setup_logging
from .report import ReportService, ReportViewModel, build_service
from .window import RANGE_KEYWORDS, ReportFilter

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL = 60


def write_report(model: ReportViewModel, output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(model.as_dict(), indent=2), encoding="utf-8")
    logger.debug("Wrote report #%d to %s", model.sequence, output)


async def refresh_loop(
    service: ReportService,
    interval: int = DEFAULT_REFRESH_INTERVAL,
    on_refresh: Callable[[ReportViewModel], None] | None = None,
    max_cycles: int | None = None,
) -> None:
    """Refresh the active report filter every ``interval`` seconds.

    A failing cycle is logged and retried on the next tick.
    """
    logger.info("Starting report refresh loop with interval %ss", interval)
    cycles = 0
    loop = asyncio.get_running_loop()
    next_run = loop.time()
    while max_cycles is None or cycles < max_cycles:
        try:
            model = await service.refresh()
            if on_refresh is not None and model is service.current:
                on_refresh(model)
        except Exception:
            logger.exception("Report refresh failed")
        cycles += 1
        if max_cycles is not None and cycles >= max_cycles:
            break
        # Keep the schedule regardless of how long the refresh took.
        next_run += max(interval, 1)
        now = loop.time()
        if next_run <= now:
            next_run = now + max(interval, 1)
        await asyncio.sleep(next_run - now)


def main() -> None:
    settings = load_settings()
    parser = argparse.ArgumentParser(description="Refresh the revenue report periodically")
    parser.add_argument("--range", dest="range_keyword", choices=RANGE_KEYWORDS, default="month")
    parser.add_argument("--start", help="Custom range start (ISO date)")
    parser.add_argument("--end", help="Custom range end (ISO date)")
    parser.add_argument("--station", type=int, help="Restrict to one station id")
    parser.add_argument("--region", help="Restrict to one region")
    parser.add_argument("--output", type=Path, default=Path("site/report.json"))
    parser.add_argument(
        "--interval",
        type=int,
        default=settings.refresh_interval,
        help="Seconds between refreshes",
    )
    parser.add_argument("--debug", action="store_true", default=settings.debug)
    args = parser.parse_args()

    setup_logging(args.debug)

    service = build_service(settings)
    service.active_filter = ReportFilter.from_params(
        args.range_keyword, args.start, args.end, args.station, args.region
    )
    try:
        asyncio.run(
            refresh_loop(
                service,
                args.interval,
                on_refresh=lambda model: write_report(model, args.output),
            )
        )
    except KeyboardInterrupt:
        logger.info("Stopped")


if __name__ == "__main__":
    main()
