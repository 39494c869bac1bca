from __future__ import annotations

import argparse
import random
from collections.abc import Sequence

import pandas as pd


def simulate_clusters(
    n: int,
    centers: Sequence[Sequence[float]] = ((0.0, 0.0),),
    spread: float = 1.0,
    n_outliers: int = 0,
    outlier_scale: float = 50.0,
    categories: Sequence[str] | None = None,
    missing_rate: float = 0.0,
    seed: int = 42,
) -> pd.DataFrame:
    """
    Gaussian blobs of "normal" points plus optional far-away outliers.

    Columns: x0..x{d-1}, optional `kind` (categorical), `is_anomaly` (0/1).
    Normal points are split round-robin across `centers`; outliers are drawn
    uniformly on +/- outlier_scale and appended at the end. With
    `missing_rate` > 0, numeric cells of normal rows are blanked at random.
    """
    rnd = random.Random(seed)
    dim = len(centers[0])
    cols: dict[str, list] = {f"x{j}": [] for j in range(dim)}
    kind: list[str] = []
    flag: list[int] = []

    for i in range(n):
        c = centers[i % len(centers)]
        for j in range(dim):
            v: float | None = rnd.gauss(c[j], spread)
            if missing_rate > 0.0 and rnd.random() < missing_rate:
                v = None
            cols[f"x{j}"].append(v)
        if categories:
            kind.append(categories[i % len(centers) % len(categories)])
        flag.append(0)

    for _ in range(n_outliers):
        for j in range(dim):
            sign = 1.0 if rnd.random() < 0.5 else -1.0
            cols[f"x{j}"].append(sign * rnd.uniform(0.5 * outlier_scale, outlier_scale))
        if categories:
            kind.append(rnd.choice(list(categories)))
        flag.append(1)

    df = pd.DataFrame({k: pd.Series(v, dtype="float64") for k, v in cols.items()})
    if categories:
        df["kind"] = pd.Series(kind, dtype="object")
    df["is_anomaly"] = pd.Series(flag, dtype="int64")
    return df


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--n", type=int, default=1000)
    ap.add_argument("--outliers", type=int, default=20)
    ap.add_argument("--spread", type=float, default=1.0)
    ap.add_argument("--out", required=True)
    ap.add_argument("--seed", type=int, default=42)
    args = ap.parse_args()

    df = simulate_clusters(
        n=args.n,
        spread=args.spread,
        n_outliers=args.outliers,
        seed=args.seed,
    )
    df.to_csv(args.out, index=False)
    print(f"wrote {len(df)} rows to {args.out}")


if __name__ == "__main__":
    main()
