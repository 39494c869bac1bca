# service/app.py
from __future__ import annotations

import json
import logging
import os
import time
from collections import OrderedDict, defaultdict
from math import isfinite
from threading import Lock
from typing import Any

from fastapi import FastAPI, HTTPException
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.responses import Response

from core.config import load_config
from core.errors import MinerError
from core.miner import BaggingRandomMiner
from core.types import FeatureType, Instance, Schema
from service.middleware import ServiceTimingMiddleware
from service.schemas import ResetIn, ResetOut, ScoreIn, ScoreOut, TrainIn, TrainOut

# ---------- config & logging ----------
cfg = load_config()

logger = logging.getLogger("bagging-random-miner")
if not logger.handlers:
    logging.basicConfig(level=str(cfg.get("log_level", "INFO")).upper())

def _int_from_env_or_cfg(env_name: str, cfg_key: str, default: int) -> int:
    v = os.getenv(env_name)
    if v is not None:
        try:
            return int(v)
        except ValueError:
            return default
    try:
        return int(cfg.get(cfg_key, default))
    except (TypeError, ValueError):
        return default

# ---------- Prometheus: PRIVATE registry to avoid duplicates on reload ----------
PROM_REG = CollectorRegistry()
REQS = Counter("requests_total", "Total requests", ["endpoint"], registry=PROM_REG)
SCORE_LAT = Histogram(
    "score_compute_ms",
    "Ensemble scoring time (ms)",
    buckets=(0.1, 0.5, 1, 2, 5, 10, 20, 50, 100, 500),
    registry=PROM_REG,
)
SERVICE_LAT = Histogram(
    "request_service_ms",
    "End-to-end service latency (ms)",
    ["endpoint"],
    buckets=(1, 2, 5, 10, 20, 50, 100, 200, 500),
    registry=PROM_REG,
)
TRAINED_MODELS = Counter("models_trained_total", "Successful /train calls", registry=PROM_REG)

app = FastAPI()
app.add_middleware(ServiceTimingMiddleware, histogram=SERVICE_LAT)

# ---------- model-sharded miners ----------
# One lock per model: with smoothing on, history must advance in call order.
_MAX_MODELS = _int_from_env_or_cfg("MAX_MODELS", "max_models", 64)
_miners: OrderedDict[str, BaggingRandomMiner] = OrderedDict()
_miner_locks: defaultdict[str, Lock] = defaultdict(Lock)
_registry_lock = Lock()

def _model_id(raw: str | None) -> str:
    return (raw or "default").strip() or "default"

def _put_miner(model_id: str, miner: BaggingRandomMiner) -> None:
    with _registry_lock:
        _miners[model_id] = miner
        _miners.move_to_end(model_id)
        while len(_miners) > _MAX_MODELS:
            evicted, _ = _miners.popitem(last=False)
            logger.info(json.dumps({"evt": "model_evicted", "model_id": evicted}))

def _get_miner(model_id: str) -> BaggingRandomMiner:
    with _registry_lock:
        miner = _miners.get(model_id)
        if miner is not None:
            _miners.move_to_end(model_id)
    if miner is None or not miner.trained:
        raise HTTPException(status_code=409, detail=f"model {model_id!r} is not trained")
    return miner

# ---------- utils ----------
def _coerce_values(schema: Schema, values: list[Any]) -> tuple[Any, ...]:
    if len(values) != len(schema.features):
        raise HTTPException(
            status_code=422,
            detail=f"expected {len(schema.features)} values, got {len(values)}",
        )
    out: list[Any] = []
    for f, v in zip(schema.features, values, strict=True):
        if v is None:
            out.append(None)
        elif f.type is FeatureType.NUMERIC:
            if not isinstance(v, int | float) or not isfinite(float(v)):
                raise HTTPException(status_code=422, detail=f"feature {f.name!r} must be a finite number or null")
            out.append(float(v))
        else:
            out.append(v)
    return tuple(out)

def _resolve_label(requested: str | None, names: list[str]) -> str | None:
    # request label wins; the configured one applies only when the payload has that column
    if requested is not None:
        return requested
    configured = cfg.get("label")
    return str(configured) if configured and str(configured) in names else None

# ---------- endpoints ----------
@app.get("/healthz")
def healthz() -> dict[str, Any]:
    REQS.labels("healthz").inc()
    with _registry_lock:
        trained = any(m.trained for m in _miners.values())
    return {"status": "ok", "trained": trained}

@app.get("/metrics")
def metrics() -> Response:
    return Response(generate_latest(PROM_REG), media_type=CONTENT_TYPE_LATEST)

@app.post("/train", response_model=TrainOut)
def train(payload: TrainIn) -> TrainOut:
    REQS.labels("train").inc()
    model_id = _model_id(payload.model_id)
    label = _resolve_label(payload.label, [f.name for f in payload.features])

    try:
        schema = Schema.build([(f.name, f.type) for f in payload.features], label=label)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    vectors = [Instance(schema, _coerce_values(schema, rec)) for rec in payload.records]

    miner = BaggingRandomMiner(
        estimator_count=payload.estimator_count,
        sample_percent=payload.sample_percent,
        sample_count=payload.sample_count,
        smoothing=payload.smoothing,
        seed=payload.seed,
        cfg=cfg,
    )
    try:
        miner.fit(schema, vectors)
    except MinerError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    state = miner.state
    assert state is not None
    _put_miner(model_id, miner)
    TRAINED_MODELS.inc()

    out = TrainOut(
        model_id=model_id,
        n_records=len(vectors),
        estimators=len(state.estimators),
        sample_size=len(state.estimators[0].centers),
        degenerate_estimators=sum(1 for e in state.estimators if e.degenerate),
        label=schema.label,
        smoothing=state.config.smoothing,
    )
    logger.info(json.dumps({"evt": "model_trained", **out.model_dump()}))
    return out

@app.post("/score", response_model=ScoreOut)
def score(payload: ScoreIn) -> ScoreOut:
    REQS.labels("score").inc()
    model_id = _model_id(payload.model_id)
    miner = _get_miner(model_id)
    state = miner.state
    assert state is not None

    inst = Instance(state.metric.schema, _coerce_values(state.metric.schema, payload.values))

    t0 = time.perf_counter()
    try:
        with _miner_locks[model_id]:
            s = miner.score(inst)
    except MinerError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    compute_ms = (time.perf_counter() - t0) * 1000.0
    SCORE_LAT.observe(compute_ms)

    return ScoreOut(model_id=model_id, score=float(s), latency_ms={"compute_ms": compute_ms})

@app.post("/reset", response_model=ResetOut)
def reset(payload: ResetIn) -> ResetOut:
    REQS.labels("reset").inc()
    model_id = _model_id(payload.model_id)
    miner = _get_miner(model_id)
    with _miner_locks[model_id]:
        miner.reset_history()
    logger.info(json.dumps({"evt": "history_reset", "model_id": model_id}))
    return ResetOut(status="ok", model_id=model_id)
