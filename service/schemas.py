from __future__ import annotations

from pydantic import BaseModel, Field

from core.types import FeatureType

# JSON has no NaN: missing values travel as null
Value = float | str | None


class FeatureIn(BaseModel):
    name: str
    type: FeatureType = FeatureType.NUMERIC


class TrainIn(BaseModel):
    model_id: str | None = None
    features: list[FeatureIn]
    label: str | None = None
    records: list[list[Value]]

    # Optional overrides of the configured miner settings
    estimator_count: int | None = Field(default=None, ge=1)
    sample_percent: int | None = Field(default=None, ge=0)
    sample_count: int | None = Field(default=None, ge=1)
    smoothing: bool | None = None
    seed: int | None = None


class TrainOut(BaseModel):
    model_id: str
    n_records: int
    estimators: int
    sample_size: int
    degenerate_estimators: int = 0
    smoothing: bool = True
    label: str | None = None


class ScoreIn(BaseModel):
    model_id: str | None = None
    values: list[Value]


class ScoreOut(BaseModel):
    model_id: str
    score: float
    latency_ms: dict[str, float] = Field(default_factory=dict)


class ResetIn(BaseModel):
    model_id: str | None = None


class ResetOut(BaseModel):
    status: str  # "ok"
    model_id: str
