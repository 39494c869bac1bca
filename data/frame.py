from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

import pandas as pd
from pandas.api.types import is_bool_dtype, is_numeric_dtype

from core.types import FeatureType, Instance, Schema


def schema_from_frame(
    df: pd.DataFrame,
    label: str | None = None,
    categorical: Iterable[str] | None = None,
) -> Schema:
    """
    Infer a Schema from column dtypes:
      - numeric (non-bool) columns -> NUMERIC
      - everything else (object, category, bool) -> CATEGORICAL
    Columns listed in `categorical` are forced to CATEGORICAL.
    """
    forced = set(categorical or ())
    unknown = forced - set(map(str, df.columns))
    if unknown:
        raise KeyError(f"categorical columns not in frame: {sorted(unknown)}")
    if label is not None and label not in df.columns:
        raise KeyError(f"label column {label!r} not in frame, got columns: {list(df.columns)}")

    columns: list[tuple[str, FeatureType]] = []
    for col in df.columns:
        dtype = df[col].dtype
        if str(col) in forced or is_bool_dtype(dtype) or not is_numeric_dtype(dtype):
            columns.append((str(col), FeatureType.CATEGORICAL))
        else:
            columns.append((str(col), FeatureType.NUMERIC))
    return Schema.build(columns, label=label)


def _cell(v: Any, ftype: FeatureType) -> Any:
    if pd.isna(v):
        return None
    if ftype is FeatureType.NUMERIC:
        return float(v)
    # numpy scalars -> python scalars so equality is plain
    return v.item() if hasattr(v, "item") else v


def iter_instances(df: pd.DataFrame, schema: Schema) -> Iterator[Instance]:
    names = [f.name for f in schema.features]
    missing = [n for n in names if n not in df.columns]
    if missing:
        raise KeyError(f"frame is missing schema columns: {missing}")
    types = [f.type for f in schema.features]
    for row in df[names].itertuples(index=False, name=None):
        yield Instance(schema, tuple(_cell(v, t) for v, t in zip(row, types, strict=True)))


def instances_from_frame(df: pd.DataFrame, schema: Schema) -> list[Instance]:
    return list(iter_instances(df, schema))
