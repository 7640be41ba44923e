from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field

_TRUE = {"1", "true", "yes", "y"}


def _env(*names: str, default: str = "") -> str:
    for name in names:
        value = os.getenv(name)
        if value is not None and value.strip():
            return value.strip()
    return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(_env(name, default=str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(_env(name, default=str(default)))
    except ValueError:
        return default


def clean_api_key(value: str) -> str:
    """Strip quotes and non-printable characters pasted along with the key."""

    text = (value or "").strip()
    m = re.match(r'^"(.*)"$', text)
    if m:
        text = m.group(1)
    return re.sub(r"[^\x20-\x7E]+", "", text)


def _field_ids() -> dict[str, list[str]]:
    raw = _env("WAIVERDESK_FIELD_IDS")
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        return {}
    if not isinstance(data, dict):
        return {}

    out: dict[str, list[str]] = {}
    for name, ids in data.items():
        if isinstance(ids, str):
            ids = [ids]
        if isinstance(ids, list):
            out[str(name)] = [str(i) for i in ids if i]
    return out


@dataclass(frozen=True, slots=True)
class Settings:
    sw_api_key: str = ""
    sw_base_url: str = "https://api.smartwaiver.com/v4"
    intake_template_id: str = ""
    liability_template_id: str = ""

    kv_backend: str = "sql"
    redis_url: str = ""
    event_bus: str = "inprocess"
    waiver_client: str = "smartwaiver"

    stream_key: str = "waiverdesk:events:v1"
    version_key: str = "waiverdesk:version"
    hidden_key: str = "waiverdesk:hidden:v1"
    store_capacity: int = 500

    heartbeat_seconds: float = 15.0
    poll_seconds: float = 1.0
    upstream_timeout: float = 15.0
    lookback_days: int = 1
    max_pages: int = 5
    page_size: int = 100

    # Custom participant field ids per metric (they drift between waiver templates).
    field_ids: dict[str, list[str]] = field(default_factory=dict)

    def missing_waiver_config(self) -> list[str]:
        missing = []
        if not self.sw_api_key:
            missing.append("SW_API_KEY")
        if not self.intake_template_id:
            missing.append("INTAKE_TEMPLATE_ID")
        if not self.liability_template_id:
            missing.append("LIABILITY_TEMPLATE_ID")
        return missing


def get_settings() -> Settings:
    """Read settings from the environment.

    Not cached: tests set env vars before building the app and expect them to apply.
    """

    return Settings(
        sw_api_key=clean_api_key(_env("SW_API_KEY")),
        sw_base_url=_env("SW_BASE_URL", default="https://api.smartwaiver.com/v4"),
        intake_template_id=_env("INTAKE_TEMPLATE_ID", "INTAKE_WAIVER_ID"),
        liability_template_id=_env("LIABILITY_TEMPLATE_ID", "LIABILITY_WAIVER_ID"),
        kv_backend=_env("WAIVERDESK_KV_BACKEND", default="sql").lower(),
        redis_url=_env("REDIS_URL", "UPSTASH_REDIS_URL"),
        event_bus=_env("WAIVERDESK_EVENT_BUS", default="inprocess").lower(),
        waiver_client=_env("WAIVERDESK_WAIVER_CLIENT", default="smartwaiver").lower(),
        stream_key=_env("WAIVERDESK_STREAM_KEY", default="waiverdesk:events:v1"),
        version_key=_env("WAIVERDESK_VERSION_KEY", default="waiverdesk:version"),
        hidden_key=_env("WAIVERDESK_HIDDEN_KEY", default="waiverdesk:hidden:v1"),
        store_capacity=max(1, _env_int("WAIVERDESK_STORE_CAPACITY", 500)),
        heartbeat_seconds=_env_float("WAIVERDESK_HEARTBEAT_SECONDS", 15.0),
        poll_seconds=_env_float("WAIVERDESK_POLL_SECONDS", 1.0),
        upstream_timeout=_env_float("WAIVERDESK_UPSTREAM_TIMEOUT", 15.0),
        lookback_days=max(1, _env_int("WAIVERDESK_LOOKBACK_DAYS", 1)),
        max_pages=max(1, _env_int("WAIVERDESK_MAX_PAGES", 5)),
        page_size=max(1, _env_int("WAIVERDESK_PAGE_SIZE", 100)),
        field_ids=_field_ids(),
    )


def db_auto_create_enabled() -> bool:
    return _env("WAIVERDESK_DB_AUTO_CREATE", default="true").lower() in _TRUE
