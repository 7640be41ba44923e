from __future__ import annotations

from services.api.app.services.waiver_base import WaiverClient
from services.api.app.services.waiver_mock import MockWaiverClient
from services.api.app.settings import Settings


def get_waiver_client(settings: Settings) -> WaiverClient:
    mode = settings.waiver_client

    if mode in ("mock", "demo"):
        return MockWaiverClient.from_env()

    if mode == "smartwaiver":
        from services.api.app.services.waiver_smartwaiver import SmartwaiverClient

        return SmartwaiverClient.from_settings(settings)

    raise ValueError(
        f"Unknown WAIVERDESK_WAIVER_CLIENT={mode!r}. Expected smartwaiver or mock."
    )
