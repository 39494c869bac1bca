# core/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from math import isnan
from typing import Any


class FeatureType(str, Enum):
    NUMERIC = "numeric"
    CATEGORICAL = "categorical"


@dataclass(frozen=True)
class Feature:
    name: str
    type: FeatureType
    index: int

    @property
    def is_numeric(self) -> bool:
        return self.type is FeatureType.NUMERIC


def is_missing(value: Any) -> bool:
    """None and NaN (of any float-like type, numpy scalars included) mark a missing value."""
    if value is None:
        return True
    if isinstance(value, str | bytes):
        return False
    try:
        return isnan(value)
    except (TypeError, ValueError):
        return False


@dataclass(frozen=True)
class Schema:
    """
    Ordered features plus an optional label feature.
    The label is never used for distances or scoring.
    """

    features: tuple[Feature, ...]
    label: str | None = None
    _by_name: dict[str, Feature] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        feats = tuple(self.features)
        object.__setattr__(self, "features", feats)
        by_name: dict[str, Feature] = {}
        for pos, f in enumerate(feats):
            if f.index != pos:
                raise ValueError(f"feature {f.name!r} has index {f.index}, expected {pos}")
            if f.name in by_name:
                raise ValueError(f"duplicate feature name {f.name!r}")
            by_name[f.name] = f
        if self.label is not None and self.label not in by_name:
            raise ValueError(f"label {self.label!r} is not a feature")
        object.__setattr__(self, "_by_name", by_name)

    @classmethod
    def build(cls, pairs: list[tuple[str, FeatureType | str]], label: str | None = None) -> Schema:
        """Build from (name, type) pairs; indices follow list order."""
        feats = tuple(Feature(str(n), FeatureType(t), i) for i, (n, t) in enumerate(pairs))
        return cls(feats, label)

    def __len__(self) -> int:
        return len(self.features)

    def feature(self, name: str) -> Feature:
        return self._by_name[name]

    @property
    def label_feature(self) -> Feature | None:
        return self._by_name[self.label] if self.label is not None else None

    @property
    def scored_features(self) -> tuple[Feature, ...]:
        return tuple(f for f in self.features if f.name != self.label)

    def is_compatible(self, other: Schema) -> bool:
        # structural check: same width and same type at every index
        if other is self:
            return True
        if len(other.features) != len(self.features):
            return False
        return all(a.type is b.type for a, b in zip(self.features, other.features, strict=True))


@dataclass(frozen=True)
class Instance:
    schema: Schema
    values: tuple[Any, ...]

    def __post_init__(self) -> None:
        vals = tuple(self.values)
        if len(vals) != len(self.schema.features):
            raise ValueError(
                f"instance has {len(vals)} values, schema has {len(self.schema.features)} features"
            )
        object.__setattr__(self, "values", vals)

    def __getitem__(self, key: Feature | str | int) -> Any:
        if isinstance(key, Feature):
            return self.values[key.index]
        if isinstance(key, str):
            return self.values[self.schema.feature(key).index]
        return self.values[key]

    def is_missing(self, feature: Feature) -> bool:
        return is_missing(self.values[feature.index])
