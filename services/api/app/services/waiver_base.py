from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Protocol


class WaiverClientError(Exception):
    """Base class for upstream waiver API errors."""


class WaiverClientConfigError(WaiverClientError):
    def __init__(self, missing: str) -> None:
        super().__init__(f"Waiver API is not configured: missing {missing}")
        self.missing = missing


class WaiverUpstreamError(WaiverClientError):
    def __init__(self, path: str, status_code: int | None, detail: str) -> None:
        status = status_code if status_code is not None else "network"
        super().__init__(f"Waiver API {path} failed ({status}): {detail}")
        self.path = path
        self.status_code = status_code


class WaiverUpstreamTimeoutError(WaiverClientError):
    def __init__(self, path: str, timeout: float) -> None:
        super().__init__(f"Waiver API {path} timed out after {timeout:g}s")
        self.path = path
        self.timeout = timeout


class WaiverClient(Protocol):
    """The two upstream capabilities the reconciliation core needs."""

    provider: str

    async def fetch_waiver(self, waiver_id: str) -> Mapping[str, Any]: ...

    async def list_waivers(
        self,
        template_id: str,
        start: datetime | None,
        end: datetime | None,
        *,
        max_pages: int,
    ) -> list[Mapping[str, Any]]: ...

    async def aclose(self) -> None: ...
