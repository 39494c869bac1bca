# core/dissimilarity.py
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from math import isfinite, isnan, sqrt

from core.errors import EmptyInput, InvalidModel, SchemaMismatch
from core.types import Feature, FeatureType, Instance, Schema

NAN = float("nan")


@dataclass
class MetricState:
    """
    Normalized Euclidean dissimilarity learned from a reference set.

    Per numeric feature we keep the observed (min, max); NaN means the
    feature was never seen with a value. Categorical features are compared
    by exact match and are not range-tracked. Arrays are indexed by
    Feature.index over the full schema (label slot stays NaN).
    """

    schema: Schema
    features: tuple[Feature, ...]
    mins: list[float]
    maxs: list[float]
    ranges: list[float]
    valid_count: int
    max_dissimilarity: float


def _expand(state_mins: list[float], state_maxs: list[float], features: Iterable[Feature], v: Instance) -> None:
    for f in features:
        if f.type is not FeatureType.NUMERIC or v.is_missing(f):
            continue
        x = float(v[f])
        i = f.index
        if isnan(state_mins[i]) or x < state_mins[i]:
            state_mins[i] = x
        if isnan(state_maxs[i]) or x > state_maxs[i]:
            state_maxs[i] = x


def _refresh(state: MetricState) -> None:
    """Recompute ranges and the normalization denominator from mins/maxs."""
    ranges = [mx - mn for mn, mx in zip(state.mins, state.maxs, strict=True)]
    valid = 0
    for f in state.features:
        if f.type is FeatureType.CATEGORICAL or isfinite(ranges[f.index]):
            valid += 1
    state.ranges = ranges
    state.valid_count = valid
    state.max_dissimilarity = sqrt(valid)


def fit_metric(vectors: Iterable[Instance], schema: Schema) -> MetricState:
    n = len(schema.features)
    features = schema.scored_features
    mins = [NAN] * n
    maxs = [NAN] * n

    count = 0
    for v in vectors:
        if v.schema != schema:
            raise InvalidModel("reference vector found with a schema different from the metric schema")
        _expand(mins, maxs, features, v)
        count += 1

    if count < 1:
        raise EmptyInput("cannot learn a dissimilarity from an empty vector collection")

    state = MetricState(
        schema=schema,
        features=features,
        mins=mins,
        maxs=maxs,
        ranges=[NAN] * n,
        valid_count=0,
        max_dissimilarity=0.0,
    )
    _refresh(state)
    return state


def update_training(state: MetricState, v: Instance) -> None:
    """Fold one more vector into the learned ranges. Ranges never shrink."""
    check_compatible(state, v)
    _expand(state.mins, state.maxs, state.features, v)
    _refresh(state)


def check_compatible(state: MetricState, v: Instance) -> None:
    if not state.schema.is_compatible(v.schema):
        raise SchemaMismatch("unable to compare objects: invalid instance schema")


def _component(state: MetricState, f: Feature, a: Instance, b: Instance) -> float:
    if a.is_missing(f) or b.is_missing(f):
        return 1.0
    if f.type is FeatureType.NUMERIC:
        r = state.ranges[f.index]
        # undefined or zero range: the feature does not discriminate
        if isnan(r) or r <= 0.0:
            return 0.0
        d = abs(float(a[f]) - float(b[f])) / r
        return 1.0 if d > 1.0 else d * d
    return 1.0 if a[f] != b[f] else 0.0


def distance(state: MetricState, a: Instance, b: Instance) -> float:
    """compare() without schema checks; callers validate once up front."""
    s = 0.0
    for f in state.features:
        s += _component(state, f, a, b)
    if state.max_dissimilarity <= 0.0:
        return 0.0 if s == 0.0 else 1.0
    return sqrt(s) / state.max_dissimilarity


def compare(state: MetricState, a: Instance, b: Instance) -> float:
    """Normalized dissimilarity in [0, 1]; 0 means identical on every scored feature."""
    check_compatible(state, a)
    check_compatible(state, b)
    return distance(state, a, b)


def compare_features(state: MetricState, a: Instance, b: Instance, features: Iterable[Feature]) -> float:
    """Same component rule restricted to `features`, normalized by sqrt(len(features))."""
    check_compatible(state, a)
    check_compatible(state, b)
    s = 0.0
    k = 0
    for f in features:
        s += _component(state, f, a, b)
        k += 1
    if k == 0:
        return 0.0
    return sqrt(s) / sqrt(k)
