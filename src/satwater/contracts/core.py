# src/satwater/contracts/core.py
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# -------------------------
# Radar
# -------------------------
Polarization = Literal["VV", "VH", "HH", "HV"]
InstrumentMode = Literal["IW", "EW", "SM"]

# -------------------------
# Ventanas temporales
# -------------------------
class DateWindow(BaseModel):
    """
    Fecha central ± `half_days`.
    Pertenencia: start <= d < end (end exclusivo, como un filtro por `advance`).
    """
    model_config = ConfigDict(frozen=True)
    center: date
    half_days: int = Field(15, ge=0)

    @field_validator("center", mode="before")
    @classmethod
    def _to_date(cls, v):
        if isinstance(v, datetime):
            return v.date()
        return v

    @property
    def start(self) -> date:
        return self.center - timedelta(days=self.half_days)

    @property
    def end(self) -> date:
        return self.center + timedelta(days=self.half_days)

    def contains(self, d: date | datetime) -> bool:
        if isinstance(d, datetime):
            d = d.date()
        return self.start <= d < self.end

    def widen(self, half_days: int) -> "DateWindow":
        return DateWindow(center=self.center, half_days=half_days)

    @classmethod
    def month_anchor(cls, year: int, month: int, half_days: int, day: int = 15) -> "DateWindow":
        return cls(center=date(year, month, day), half_days=half_days)

    def __str__(self) -> str:
        return f"[{self.start.isoformat()}, {self.end.isoformat()})"

# -------------------------
# Ejecuciones / auditoría
# -------------------------
class Stage(str, Enum):
    RADAR = "radar"
    OPTICAL = "optical"
    FUSE = "fuse"
    TRAIN = "train"
    ASSIGN = "assign"
    SELECT = "select"
    REFERENCE = "reference"
    EXPORT = "export"

class RunMeta(BaseModel):
    model_config = ConfigDict(frozen=True)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    target_date: date
    cluster_count: int = Field(ge=1)
    region_id: str | None = None
    notes: str | None = None
    ended_at: datetime | None = None

    def end_now(self, notes: str | None = None) -> "RunMeta":
        upd = {"ended_at": datetime.now(timezone.utc)}
        if notes is not None:
            upd["notes"] = notes
        return self.model_copy(update=upd)

    @property
    def duration_s(self) -> float | None:
        if self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds()

class RunError(BaseModel):
    model_config = ConfigDict(frozen=True)
    stage: Optional[Stage] = None
    message: str
    detail: str | None = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "RunError":
        stage = getattr(exc, "stage", None)
        return cls(stage=stage, message=str(exc), detail=type(exc).__name__)
