from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

PhaseName = Literal["idle", "calculating", "result"]


class ScoreBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    brand: str
    recall: int = Field(..., ge=0, lt=40)
    wiki: Literal[0, 20]
    seo: int = Field(..., ge=0, lt=25)
    platforms: int = Field(..., ge=0, le=15)
    # Sum of the four components; not capped on its own.
    total: int


class CalculateRequest(BaseModel):
    url: str = Field("", max_length=2048)


class WidgetStateResponse(BaseModel):
    phase: PhaseName
    url: str
    breakdown: ScoreBreakdown | None = None
    logo_url: str = ""
    calculating: bool
    last_calculated_url: str


class CalculateResponse(BaseModel):
    # False when the request was ignored (already calculating, or same URL as last time).
    calculated: bool
    state: WidgetStateResponse
