from dataclasses import dataclass, field


@dataclass
class SourceConfig:
    name: str
    display_name: str
    api_url: str
    poll_interval: int  # seconds
    kind: str  # "roster" or "summary"
    enabled: bool = True
    params: dict[str, str] = field(default_factory=dict)
    # Add today's from_date/to_date to each request
    date_range: bool = False


def build_sources(settings) -> dict[str, SourceConfig]:
    """Build the SOURCES registry from application settings.

    Static data (kind, report action) lives here; env-driven fields
    (enabled, api_url, poll_interval) come from Settings.
    """
    return {
        "live_roster": SourceConfig(
            name="live_roster",
            display_name="Live roster",
            api_url=settings.live_roster_api_url,
            poll_interval=settings.live_roster_poll_interval,
            kind="roster",
            enabled=settings.live_roster_enabled,
        ),
        "weighbridge_summary": SourceConfig(
            name="weighbridge_summary",
            display_name="Weighbridge summary",
            api_url=settings.waste_api_url,
            poll_interval=settings.summary_poll_interval,
            kind="summary",
            enabled=settings.weighbridge_summary_enabled,
            params={"action": "date_wise_data", "key": settings.waste_api_key},
            date_range=True,
        ),
        "collection_summary": SourceConfig(
            name="collection_summary",
            display_name="Collection summary",
            api_url=settings.waste_api_url,
            poll_interval=settings.summary_poll_interval,
            kind="summary",
            enabled=settings.collection_summary_enabled,
            params={"action": "day_wise_data", "key": settings.waste_api_key},
            date_range=True,
        ),
    }
