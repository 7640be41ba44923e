from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx
from services.api.app.services.waiver_base import (
    WaiverClientConfigError,
    WaiverUpstreamError,
    WaiverUpstreamTimeoutError,
)
from services.api.app.settings import Settings
from services.api.app.waivers.ranges import format_upstream

logger = logging.getLogger(__name__)

# The provider has accepted both header names over time.
API_KEY_HEADERS = ("sw-api-key", "x-api-key")


def base_url_candidates(base_url: str) -> list[str]:
    """Versioned base first, then the unversioned one."""

    base = (base_url or "").strip().rstrip("/")
    if not base:
        base = "https://api.smartwaiver.com"
    if not base.lower().startswith(("http://", "https://")):
        base = "https://" + base

    if base.lower().endswith("/v4"):
        root = base[: -len("/v4")]
        return [base, root]
    return [f"{base}/v4", base]


class SmartwaiverClient:
    provider = "smartwaiver"

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        timeout: float = 15.0,
        page_size: int = 100,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._page_size = page_size
        self._bases = base_url_candidates(base_url)
        self._headers = list(API_KEY_HEADERS)
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> SmartwaiverClient:
        return cls(
            api_key=settings.sw_api_key,
            base_url=settings.sw_base_url,
            timeout=settings.upstream_timeout,
            page_size=settings.page_size,
        )

    async def fetch_waiver(self, waiver_id: str) -> Mapping[str, Any]:
        data = await self._get_json(f"/waivers/{quote(waiver_id, safe='')}", {"pdf": "false"})
        if isinstance(data, Mapping) and isinstance(data.get("waiver"), Mapping):
            return data["waiver"]
        if isinstance(data, Mapping):
            return data
        raise WaiverUpstreamError(f"/waivers/{waiver_id}", 200, "unexpected response shape")

    async def list_waivers(
        self,
        template_id: str,
        start: datetime | None,
        end: datetime | None,
        *,
        max_pages: int,
    ) -> list[Mapping[str, Any]]:
        params: dict[str, str] = {
            "templateId": template_id,
            "verified": "true",
            "limit": str(self._page_size),
        }
        if start is not None:
            params["fromDts"] = format_upstream(start)
        if end is not None:
            params["toDts"] = format_upstream(end)

        out: list[Mapping[str, Any]] = []
        for page in range(max_pages):
            params["offset"] = str(page * self._page_size)
            data = await self._get_json("/waivers", params)
            items = _waiver_list(data)
            out.extend(items)
            if len(items) < self._page_size:
                return out

        logger.warning(
            f"Smartwaiver: stopped listing template {template_id} after {max_pages} pages "
            f"({len(out)} waivers)"
        )
        return out

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_json(self, path: str, params: Mapping[str, str] | None = None) -> Any:
        if not self._api_key:
            raise WaiverClientConfigError("SW_API_KEY")

        last: httpx.Response | None = None
        for base in list(self._bases):
            for header in list(self._headers):
                response = await self._send(f"{base}{path}", path, header, params)

                if response.status_code in (401, 403):
                    last = response
                    continue
                if response.status_code == 404 and base != self._bases[-1]:
                    last = response
                    break
                if response.status_code >= 400:
                    raise WaiverUpstreamError(path, response.status_code, response.text[:500])

                self._remember(base, header)
                try:
                    return response.json()
                except ValueError as e:
                    raise WaiverUpstreamError(path, response.status_code, "invalid JSON") from e

        status = last.status_code if last is not None else None
        detail = last.text[:500] if last is not None else "no response"
        raise WaiverUpstreamError(path, status, detail)

    async def _send(
        self,
        url: str,
        path: str,
        header: str,
        params: Mapping[str, str] | None,
    ) -> httpx.Response:
        try:
            return await self._client.get(url, params=params, headers={header: self._api_key})
        except httpx.TimeoutException as e:
            raise WaiverUpstreamTimeoutError(path, self._timeout) from e
        except httpx.HTTPError as e:
            raise WaiverUpstreamError(path, None, str(e)) from e

    def _remember(self, base: str, header: str) -> None:
        # Try the combination that worked first next time.
        if self._bases[0] != base:
            self._bases.remove(base)
            self._bases.insert(0, base)
            logger.info(f"Smartwaiver: using base {base}")
        if self._headers[0] != header:
            self._headers.remove(header)
            self._headers.insert(0, header)
            logger.info(f"Smartwaiver: using API key header {header}")


def _waiver_list(data: Any) -> list[Mapping[str, Any]]:
    if isinstance(data, Mapping):
        data = data.get("waivers")
    if not isinstance(data, list):
        return []
    return [w for w in data if isinstance(w, Mapping)]
