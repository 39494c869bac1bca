from __future__ import annotations

import argparse
import json
import sys
import time

from core.config import load_config
from core.miner import BaggingRandomMiner
from data.frame import instances_from_frame, schema_from_frame
from data.sim import simulate_clusters
from evaluation.runner import ScoringRunner


def main() -> int:
    ap = argparse.ArgumentParser(description="Train on synthetic normal data and time scoring.")
    ap.add_argument("--n", type=int, default=2000, help="Normal points used for training.")
    ap.add_argument("--outliers", type=int, default=50)
    ap.add_argument("--threshold", type=float, default=0.5)
    ap.add_argument("--seed", type=int, default=42)
    ap.add_argument("--profile", choices=["small", "stateless"], help="Config profile to load.")
    ap.add_argument("--config", help="Path to a YAML config file.")
    args = ap.parse_args()

    cfg = load_config(args.config, args.profile)

    df = simulate_clusters(args.n, n_outliers=args.outliers, seed=args.seed)
    label = cfg.get("label") or "is_anomaly"
    schema = schema_from_frame(df, label=label)
    rows = instances_from_frame(df, schema)

    t0 = time.perf_counter()
    miner = BaggingRandomMiner(seed=args.seed, cfg=cfg).fit(schema, rows[: args.n])
    train_ms = (time.perf_counter() - t0) * 1000.0

    metrics, _ = ScoringRunner(threshold=args.threshold).run(miner, rows, labels=df[label].tolist())
    metrics["train_ms"] = train_ms
    print(json.dumps({"metrics": metrics}, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
