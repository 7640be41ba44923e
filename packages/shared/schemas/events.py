"""Shared waiver event schema (v1).

The backend keeps a bounded, append-only log of these events and streams them to
dashboards. Clients reconcile intake rows against liability events to decide who still
needs to sign.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class EventKindV1(str, Enum):
    INTAKE = "intake"
    LIABILITY = "liability"


class SkierTypeV1(str, Enum):
    TYPE_I = "I"
    TYPE_II = "II"
    TYPE_III = "III"
    UNKNOWN = ""


class ParticipantV1(BaseModel):
    participant_index: int = Field(..., ge=0)
    first_name: str = ""
    last_name: str = ""
    email: str = ""

    age: int | None = Field(default=None, ge=0, le=120)
    weight_lb: int | None = Field(default=None, gt=0)
    height_in: int | None = Field(default=None, gt=0)
    skier_type: SkierTypeV1 = SkierTypeV1.UNKNOWN


class WaiverEventV1(BaseModel):
    type: EventKindV1
    waiver_id: str
    template_id: str = ""
    signed_on: str = ""

    # Cross-system correlation key, "ls_<customer id>".
    external_tag: str = ""
    email: str = ""

    participants: list[ParticipantV1] = Field(default_factory=list)
    pdf_url: str = ""

    @property
    def lightspeed_id(self) -> str:
        if self.external_tag.lower().startswith("ls_"):
            return self.external_tag[3:]
        return ""

    def reduced(self) -> WaiverEventV1:
        """Return the matching-fields-only form (names and emails)."""

        return self.model_copy(
            update={
                "participants": [
                    ParticipantV1(
                        participant_index=p.participant_index,
                        first_name=p.first_name,
                        last_name=p.last_name,
                        email=p.email,
                    )
                    for p in self.participants
                ],
                "pdf_url": "",
            }
        )


class OpenRowV1(BaseModel):
    """One intake participant that has no matching liability waiver yet."""

    row_key: str
    waiver_id: str
    signed_on: str = ""
    pdf_url: str = ""
    external_tag: str = ""
    lightspeed_id: str = ""

    participant_index: int
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    age: int | None = None
    weight_lb: int | None = None
    height_in: int | None = None
    skier_type: SkierTypeV1 = SkierTypeV1.UNKNOWN


class SseEventTypeV1(str, Enum):
    PING = "ping"
    TICK = "tick"
    INTAKE = "intake"
    LIABILITY = "liability"
