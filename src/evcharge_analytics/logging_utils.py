import logging


def setup_logging(debug: bool = False) -> None:
    """Configure logging for the report service and CLI tools."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if not debug:
        # Connection pool chatter drowns out refresh logs at INFO.
        logging.getLogger("urllib3").setLevel(logging.WARNING)
