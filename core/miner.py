# core/miner.py
from __future__ import annotations

import json
import logging
from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from math import exp
from typing import Any

import numpy as np

from core.config import load_config
from core.dissimilarity import MetricState, check_compatible, distance, fit_metric
from core.errors import MinerError
from core.sampling import make_rng, sample_with_replacement
from core.types import Instance, Schema

logger = logging.getLogger("bagging-random-miner")

# temporal smoothing: weight of the history term and its fixed capacity
ALPHA = 0.5
MAX_HISTORY = 3


@dataclass(frozen=True)
class MinerConfig:
    estimator_count: int = 100
    sample_percent: int = 1
    use_sample_count: bool = False
    sample_count: int = 0
    smoothing: bool = True
    seed: int | None = None

    def __post_init__(self) -> None:
        if self.estimator_count < 1:
            raise ValueError(f"estimator_count must be >= 1, got {self.estimator_count}")
        if self.use_sample_count and self.sample_count < 1:
            raise ValueError(f"bootstrap_sample_count must be >= 1, got {self.sample_count}")
        if not self.use_sample_count and self.sample_percent < 0:
            raise ValueError(f"bootstrap_sample_percent must be >= 0, got {self.sample_percent}")

    @classmethod
    def from_cfg(cls, cfg: dict[str, Any] | None) -> MinerConfig:
        c = cfg or {}
        seed = c.get("seed")
        return cls(
            estimator_count=int(c.get("estimator_count", 100)),
            sample_percent=int(c.get("bootstrap_sample_percent", 1)),
            use_sample_count=bool(c.get("use_bootstrap_sample_count", False)),
            sample_count=int(c.get("bootstrap_sample_count", 0)),
            smoothing=bool(c.get("smoothing", True)),
            seed=None if seed is None else int(seed),
        )

    def sample_size(self, n: int) -> int:
        if self.use_sample_count:
            return self.sample_count
        # integer arithmetic, truncating like a plain count-of-percent
        return self.sample_percent * n // 100


@dataclass(frozen=True)
class Estimator:
    centers: tuple[Instance, ...]
    bandwidth: float

    @property
    def degenerate(self) -> bool:
        return self.bandwidth <= 0.0


@dataclass
class ScorerState:
    config: MinerConfig
    metric: MetricState
    estimators: tuple[Estimator, ...]
    history: deque[float] = field(default_factory=deque)
    history_sum: float = 0.0


def clamp_non_negative(x: float) -> float:
    return 0.0 if x < 0.0 else x


def mean_pairwise_distance(metric: MetricState, centers: Sequence[Instance]) -> float:
    """
    Mean distance over all unique pairs. Fewer than two centers have no
    pairs; that is reported as 0.0 (degenerate bandwidth).
    """
    s = 0.0
    count = 0
    n = len(centers)
    for i in range(n - 1):
        for j in range(i + 1, n):
            s += distance(metric, centers[i], centers[j])
            count += 1
    return s / count if count else 0.0


def kernel_similarity(min_distance: float, bandwidth: float) -> float:
    """Gaussian kernel on the nearest-center distance. Exact matches score 1."""
    if min_distance <= 0.0:
        return 1.0
    if bandwidth <= 0.0:
        return 0.0
    return exp(-(min_distance * min_distance) / (2.0 * bandwidth * bandwidth))


def train(
    schema: Schema,
    vectors: Iterable[Instance],
    config: MinerConfig | None = None,
    rng: np.random.Generator | int | None = None,
) -> ScorerState:
    cfg = config or MinerConfig()
    data = list(vectors)
    metric = fit_metric(data, schema)

    size = cfg.sample_size(len(data))
    if size < 1:
        logger.warning(json.dumps({"evt": "sample_size_raised", "computed": size, "used": 1, "n": len(data)}))
        size = 1

    gen = make_rng(rng if rng is not None else cfg.seed)
    estimators: list[Estimator] = []
    degenerate = 0
    for _ in range(cfg.estimator_count):
        centers = tuple(sample_with_replacement(data, size, gen))
        est = Estimator(centers, mean_pairwise_distance(metric, centers))
        if est.degenerate:
            degenerate += 1
        estimators.append(est)

    if degenerate:
        logger.warning(json.dumps({
            "evt": "degenerate_bandwidth",
            "estimators": degenerate,
            "of": cfg.estimator_count,
            "sample_size": size,
        }))
    logger.info(json.dumps({
        "evt": "train",
        "n": len(data),
        "features": metric.valid_count,
        "estimators": cfg.estimator_count,
        "sample_size": size,
        "smoothing": cfg.smoothing,
    }))
    return ScorerState(config=cfg, metric=metric, estimators=tuple(estimators))


def current_similarity(state: ScorerState, vector: Instance) -> float:
    """Ensemble-averaged, un-smoothed similarity. Does not touch history."""
    check_compatible(state.metric, vector)
    total = 0.0
    for est in state.estimators:
        d_min = min(distance(state.metric, vector, c) for c in est.centers)
        total += kernel_similarity(d_min, est.bandwidth)
    return clamp_non_negative(total / len(state.estimators))


def classify(state: ScorerState, vector: Instance) -> float:
    """
    Anomaly score, 1 - similarity. With smoothing on, the result blends the
    current similarity with the history sum over the fixed capacity, so the
    first calls after training lean towards higher scores until it fills.
    """
    sim = current_similarity(state, vector)
    if not state.config.smoothing:
        return 1.0 - sim

    result = clamp_non_negative(ALPHA * (state.history_sum / MAX_HISTORY) + (1.0 - ALPHA) * sim)

    state.history_sum += sim
    if len(state.history) == MAX_HISTORY:
        state.history_sum -= state.history.popleft()
    state.history.append(sim)
    state.history_sum = clamp_non_negative(state.history_sum)

    return 1.0 - result


class BaggingRandomMiner:
    """
    Stateful wrapper in the same shape as the streaming detectors:
      - fit(schema, vectors) trains the ensemble
      - score(vector) returns the anomaly score in [0, 1]
    Constructor arguments override config; config overrides defaults.
    Not safe to score concurrently with smoothing on: history order matters.
    """

    def __init__(
        self,
        estimator_count: int | None = None,
        sample_percent: int | None = None,
        sample_count: int | None = None,
        smoothing: bool | None = None,
        *,
        seed: int | None = None,
        cfg: dict[str, Any] | None = None,
    ) -> None:
        self.cfg = cfg if cfg is not None else load_config()
        base = MinerConfig.from_cfg(self.cfg)
        use_count = base.use_sample_count if sample_count is None else True
        if sample_percent is not None and sample_count is None:
            use_count = False
        self.config = MinerConfig(
            estimator_count=base.estimator_count if estimator_count is None else int(estimator_count),
            sample_percent=base.sample_percent if sample_percent is None else int(sample_percent),
            use_sample_count=use_count,
            sample_count=base.sample_count if sample_count is None else int(sample_count),
            smoothing=base.smoothing if smoothing is None else bool(smoothing),
            seed=base.seed if seed is None else int(seed),
        )
        self.state: ScorerState | None = None

    @property
    def trained(self) -> bool:
        return self.state is not None

    def fit(self, schema: Schema, vectors: Iterable[Instance]) -> BaggingRandomMiner:
        self.state = train(schema, vectors, self.config)
        return self

    def _require_state(self) -> ScorerState:
        if self.state is None:
            raise MinerError("miner is not trained; call fit() first")
        return self.state

    def score(self, vector: Instance) -> float:
        return classify(self._require_state(), vector)

    def score_many(self, vectors: Iterable[Instance]) -> list[float]:
        # in order: smoothing makes each score depend on the previous ones
        state = self._require_state()
        return [classify(state, v) for v in vectors]

    def reset_history(self) -> None:
        state = self._require_state()
        state.history.clear()
        state.history_sum = 0.0
