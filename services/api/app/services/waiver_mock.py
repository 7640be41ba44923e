from __future__ import annotations

import json
import os
from collections.abc import Iterable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from services.api.app.services.waiver_base import WaiverUpstreamError
from services.api.app.waivers.matcher import parse_timestamp
from services.api.app.waivers.normalizer import normalize_timestamp


class MockWaiverClient:
    """In-memory waiver API for local dev and tests.

    Waivers are detail payloads keyed by their waiverId. Set WAIVERDESK_MOCK_WAIVERS to a
    JSON file (a list of waivers) to serve fixtures from disk.
    """

    provider = "mock"

    def __init__(self, waivers: Iterable[Mapping[str, Any]] = ()) -> None:
        self._waivers: dict[str, Mapping[str, Any]] = {}
        self.fetched: list[str] = []
        for w in waivers:
            self.add(w)

    @classmethod
    def from_env(cls) -> MockWaiverClient:
        path = os.getenv("WAIVERDESK_MOCK_WAIVERS", "").strip()
        if not path:
            return cls()
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls(data if isinstance(data, list) else [])

    def add(self, waiver: Mapping[str, Any]) -> None:
        waiver_id = str(waiver.get("waiverId") or waiver.get("waiver_id") or "")
        if waiver_id:
            self._waivers[waiver_id] = waiver

    async def fetch_waiver(self, waiver_id: str) -> Mapping[str, Any]:
        self.fetched.append(waiver_id)
        waiver = self._waivers.get(waiver_id)
        if waiver is None:
            raise WaiverUpstreamError(f"/waivers/{waiver_id}", 404, "waiver not found")
        return waiver

    async def list_waivers(
        self,
        template_id: str,
        start: datetime | None,
        end: datetime | None,
        *,
        max_pages: int,
    ) -> list[Mapping[str, Any]]:
        del max_pages

        out = []
        for waiver in self._waivers.values():
            if str(waiver.get("templateId") or "") != template_id:
                continue
            created = parse_timestamp(normalize_timestamp(waiver.get("createdOn")))
            if start is not None and (created is None or created < start):
                continue
            if end is not None and (created is None or created >= end):
                continue
            out.append(waiver)
        return out

    async def aclose(self) -> None:
        return None
