from dataclasses import dataclass

@dataclass
class SuggestionRules:
    """Policy thresholds for infrastructure upgrade suggestions."""

    # Share of total revenue (%) above which a single station is flagged
    station_share_pct: float = 30.0
    # Share of total revenue (%) above which a region is flagged
    region_share_pct: float = 40.0
    # Number of busiest hours reported in the peak-hour suggestion
    peak_hour_count: int = 3
    # Sessions longer than this are counted as long sessions (hours)
    long_session_hours: float = 3.0
