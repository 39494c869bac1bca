from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from typing import Any

from core.miner import BaggingRandomMiner
from core.types import Instance

from .metrics import latency_p50_p95, roc_auc, score_summary, threshold_metrics


class ScoringRunner:
    """
    Scores a stream of instances in order against a trained miner.
    Order is preserved because smoothed scores depend on earlier calls.
    """

    def __init__(self, threshold: float = 0.5) -> None:
        self.threshold = float(threshold)

    def run(
        self,
        miner: BaggingRandomMiner,
        stream: Iterable[Instance],
        labels: Sequence[int] | None = None,
    ) -> tuple[dict[str, float], list[dict[str, Any]]]:
        log: list[dict[str, Any]] = []
        scores: list[float] = []
        lat_seq: list[float] = []

        for i, inst in enumerate(stream):
            t0 = time.perf_counter()
            score = miner.score(inst)
            compute_ms = (time.perf_counter() - t0) * 1000.0

            scores.append(score)
            lat_seq.append(compute_ms)
            row: dict[str, Any] = {"i": i, "score": score, "lat_ms": compute_ms}
            if labels is not None and i < len(labels):
                row["label"] = int(labels[i])
            log.append(row)

        m: dict[str, float] = {"n_points": float(len(scores))}
        m.update(score_summary(scores))
        p = latency_p50_p95(lat_seq)
        m["latency_p50_ms"] = p["p50"]
        m["latency_p95_ms"] = p["p95"]

        if labels is not None:
            y = [int(v) for v in labels[: len(scores)]]
            m["roc_auc"] = roc_auc(y, scores[: len(y)])
            m.update(threshold_metrics(y, scores[: len(y)], self.threshold))

        return m, log
