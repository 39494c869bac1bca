from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from sklearn.metrics import (
    confusion_matrix,
    f1_score,
    precision_score,
    recall_score,
    roc_auc_score,
)


def latency_p50_p95(latencies_ms: Sequence[float]) -> dict[str, float]:
    """
    p50 / p95 of latencies using simple order statistics. Returns zeros if empty.
    """
    if not latencies_ms:
        return {"p50": 0.0, "p95": 0.0}
    xs = sorted(latencies_ms)
    n = len(xs)
    p50 = xs[int(0.5 * (n - 1))]
    p95 = xs[int(0.95 * (n - 1))]
    return {"p50": float(p50), "p95": float(p95)}


def _arrays(labels: Sequence[int], scores: Sequence[float]) -> tuple[np.ndarray, np.ndarray]:
    y = np.asarray(labels).astype(int)
    s = np.asarray(scores, dtype=float)
    if y.shape != s.shape:
        raise ValueError(f"labels and scores differ in length: {len(y)} vs {len(s)}")
    return y, s


def roc_auc(labels: Sequence[int], scores: Sequence[float]) -> float:
    """
    Label 1 = anomaly (should score high). NaN when only one class is present.
    """
    y, s = _arrays(labels, scores)
    if len(np.unique(y)) < 2:
        return float("nan")
    return float(roc_auc_score(y, s))


def threshold_metrics(labels: Sequence[int], scores: Sequence[float], threshold: float = 0.5) -> dict[str, float]:
    """Flag scores >= threshold as anomalies and compare with labels."""
    y, s = _arrays(labels, scores)
    y_pred = (s >= threshold).astype(int)

    tn, fp, fn, tp = confusion_matrix(y, y_pred, labels=[0, 1]).ravel()
    return {
        "precision": float(precision_score(y, y_pred, zero_division=0)),
        "recall": float(recall_score(y, y_pred, zero_division=0)),
        "f1": float(f1_score(y, y_pred, zero_division=0)),
        "fpr": float(fp / (fp + tn)) if (fp + tn) > 0 else 0.0,
        "flagged": float(tp + fp),
    }


def score_summary(scores: Sequence[float]) -> dict[str, float]:
    if not scores:
        return {"score_mean": float("nan"), "score_min": float("nan"), "score_max": float("nan")}
    arr = np.asarray(scores, dtype=float)
    return {
        "score_mean": float(arr.mean()),
        "score_min": float(arr.min()),
        "score_max": float(arr.max()),
    }
