from __future__ import annotations

from typing import Literal

from packages.shared.schemas.events import OpenRowV1
from pydantic import BaseModel, Field


class WebhookAck(BaseModel):
    ok: bool
    ignored: bool | None = None
    reason: str | None = None
    type: str | None = None
    waiver_id: str | None = None
    participants: int | None = None
    seq: int | None = None
    error: str | None = None


class OpenCounts(BaseModel):
    intake_participants: int = 0
    open: int = 0
    matched: int = 0
    hidden: int = 0


class OpenIntakesResponse(BaseModel):
    rows: list[OpenRowV1] = Field(default_factory=list)
    counts: OpenCounts = Field(default_factory=OpenCounts)
    source: Literal["store", "upstream"] = "store"
    error: str | None = None


class LiabilityRow(BaseModel):
    waiver_id: str
    template_id: str = ""
    signed_on: str = ""
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    external_tag: str = ""


class OpenLiabilitiesResponse(BaseModel):
    rows: list[LiabilityRow] = Field(default_factory=list)
    count: int = 0
    from_: str = Field("", alias="from")
    to: str = ""
    error: str | None = None

    model_config = {"populate_by_name": True}


class LiabilityLatestResponse(BaseModel):
    row: LiabilityRow | None = None
    rows: list[LiabilityRow] = Field(default_factory=list)
    count: int = 0
    error: str | None = None


class HiddenRequest(BaseModel):
    key: str = Field(..., min_length=1)
    action: Literal["hide", "show", "toggle"] = "toggle"


class HiddenResponse(BaseModel):
    ok: bool
    key: str | None = None
    hidden: bool | None = None
    version: int | None = None
    error: str | None = None


class HiddenListResponse(BaseModel):
    ok: bool
    hidden: list[str] = Field(default_factory=list)
    error: str | None = None


class ConfigResponse(BaseModel):
    has_api_key: bool
    has_intake_template: bool
    has_liability_template: bool
    base_url: str
    kv_backend: str
    event_bus: str
    waiver_client: str
    store_capacity: int
