import math
import random

import numpy as np
import pytest

from core.dissimilarity import compare, compare_features, fit_metric, update_training
from core.errors import EmptyInput, InvalidModel, SchemaMismatch
from core.types import Instance, Schema, is_missing

SCHEMA = Schema.build(
    [("a", "numeric"), ("b", "numeric"), ("c", "categorical"), ("y", "categorical")],
    label="y",
)


def _v(*vals, schema=SCHEMA):
    return Instance(schema, vals)


def _metric():
    ref = [_v(0.0, 10.0, "r", "n"), _v(10.0, 20.0, "g", "n"), _v(5.0, 15.0, "r", "n")]
    return fit_metric(ref, SCHEMA)


def test_learns_ranges_and_valid_count():
    m = _metric()
    assert m.ranges[0] == 10.0
    assert m.ranges[1] == 10.0
    # categorical and label slots are not range-tracked
    assert math.isnan(m.ranges[2])
    assert math.isnan(m.ranges[3])
    assert m.valid_count == 3
    assert m.max_dissimilarity == pytest.approx(math.sqrt(3))


def test_identity_and_symmetry():
    m = _metric()
    a = _v(0.0, 10.0, "r", "n")
    b = _v(5.0, 12.0, "g", "x")
    assert compare(m, a, a) == 0.0
    assert compare(m, a, b) == pytest.approx(compare(m, b, a))


def test_normalized_component_values():
    m = _metric()
    # every scored feature maximally different
    assert compare(m, _v(0.0, 10.0, "r", "n"), _v(10.0, 20.0, "g", "n")) == pytest.approx(1.0)
    # half the range on one feature: sqrt(0.25) / sqrt(3)
    assert compare(m, _v(0.0, 10.0, "r", "n"), _v(5.0, 10.0, "r", "n")) == pytest.approx(0.5 / math.sqrt(3))


def test_label_is_ignored():
    m = _metric()
    assert compare(m, _v(1.0, 11.0, "r", "n"), _v(1.0, 11.0, "r", "other")) == 0.0


def test_missing_value_counts_as_full_disagreement():
    m = _metric()
    expected = 1.0 / math.sqrt(3)
    assert compare(m, _v(None, 10.0, "r", "n"), _v(0.0, 10.0, "r", "n")) == pytest.approx(expected)
    assert compare(m, _v(float("nan"), 10.0, "r", "n"), _v(0.0, 10.0, "r", "n")) == pytest.approx(expected)
    assert compare(m, _v(0.0, 10.0, None, "n"), _v(0.0, 10.0, None, "n")) == pytest.approx(expected)


def test_out_of_range_component_is_clamped():
    m = _metric()
    d = compare(m, _v(500.0, 10.0, "r", "n"), _v(0.0, 10.0, "r", "n"))
    assert d == pytest.approx(1.0 / math.sqrt(3))
    far = compare(m, _v(-1e9, 1e9, "z", "n"), _v(1e9, -1e9, "r", "n"))
    assert 0.0 <= far <= 1.0


def test_empty_reference_set_raises():
    with pytest.raises(EmptyInput):
        fit_metric([], SCHEMA)


def test_foreign_schema_in_reference_set_raises():
    other = Schema.build(
        [("p", "numeric"), ("q", "numeric"), ("r", "categorical"), ("y", "categorical")], label="y"
    )
    with pytest.raises(InvalidModel):
        fit_metric([_v(0.0, 1.0, "r", "n"), _v(1.0, 2.0, "g", "n", schema=other)], SCHEMA)


def test_compare_rejects_incompatible_schema():
    m = _metric()
    narrow = Schema.build([("a", "numeric"), ("b", "numeric")])
    retyped = Schema.build(
        [("a", "numeric"), ("b", "categorical"), ("c", "categorical"), ("y", "categorical")], label="y"
    )
    with pytest.raises(SchemaMismatch):
        compare(m, _v(0.0, 1.0, "r", "n"), Instance(narrow, (0.0, 1.0)))
    with pytest.raises(SchemaMismatch):
        compare(m, Instance(retyped, (0.0, "x", "r", "n")), _v(0.0, 1.0, "r", "n"))


def test_compare_accepts_structurally_equal_schema():
    m = _metric()
    renamed = Schema.build(
        [("p", "numeric"), ("q", "numeric"), ("r", "categorical"), ("z", "categorical")], label="z"
    )
    assert compare(m, _v(0.0, 10.0, "r", "n"), Instance(renamed, (0.0, 10.0, "r", "n"))) == 0.0


def test_zero_variance_reference_does_not_raise():
    schema = Schema.build([("a", "numeric"), ("b", "numeric")])
    ref = [Instance(schema, (1.0, 1.0)) for _ in range(5)]
    m = fit_metric(ref, schema)
    assert m.ranges == [0.0, 0.0]
    assert m.valid_count == 2
    assert compare(m, Instance(schema, (5.0, 9.0)), Instance(schema, (-3.0, 2.0))) == 0.0


def test_never_observed_feature_is_not_counted():
    schema = Schema.build([("a", "numeric"), ("b", "numeric")])
    ref = [Instance(schema, (0.0, None)), Instance(schema, (2.0, None))]
    m = fit_metric(ref, schema)
    assert m.valid_count == 1
    assert compare(m, Instance(schema, (0.0, 3.0)), Instance(schema, (1.0, 7.0))) == pytest.approx(0.5)


def test_no_valid_features():
    schema = Schema.build([("a", "numeric")])
    m = fit_metric([Instance(schema, (None,))], schema)
    assert m.valid_count == 0
    assert compare(m, Instance(schema, (1.0,)), Instance(schema, (2.0,))) == 0.0
    assert compare(m, Instance(schema, (None,)), Instance(schema, (2.0,))) == 1.0


def test_update_training_extends_ranges():
    schema = Schema.build([("a", "numeric"), ("b", "numeric")])
    m = fit_metric([Instance(schema, (0.0, 0.0)), Instance(schema, (10.0, 0.0))], schema)
    assert m.ranges == [10.0, 0.0]

    update_training(m, Instance(schema, (20.0, 4.0)))
    assert m.ranges == [20.0, 4.0]
    assert m.mins == [0.0, 0.0]
    assert m.maxs == [20.0, 4.0]

    # a value inside the learned range never shrinks it
    update_training(m, Instance(schema, (5.0, 2.0)))
    assert m.ranges == [20.0, 4.0]


def test_update_training_makes_feature_valid():
    schema = Schema.build([("a", "numeric"), ("b", "numeric")])
    m = fit_metric([Instance(schema, (0.0, None))], schema)
    assert m.valid_count == 1
    update_training(m, Instance(schema, (1.0, 3.0)))
    assert m.valid_count == 2
    assert m.ranges[1] == 0.0


def test_compare_features_subset():
    m = _metric()
    a = _v(0.0, 10.0, "r", "n")
    b = _v(5.0, 20.0, "g", "n")
    assert compare_features(m, a, b, [SCHEMA.feature("a")]) == pytest.approx(0.5)
    both = compare_features(m, a, b, [SCHEMA.feature("a"), SCHEMA.feature("c")])
    assert both == pytest.approx(math.sqrt(1.25) / math.sqrt(2))
    assert compare_features(m, a, b, []) == 0.0


def _random_vector(rnd):
    a = None if rnd.random() < 0.15 else rnd.uniform(0.0, 10.0)
    b = None if rnd.random() < 0.15 else rnd.uniform(10.0, 20.0)
    c = rnd.choice(["r", "g", "b", None])
    return _v(a, b, c, rnd.choice(["n", "a"]))


def test_properties_hold_on_random_in_range_vectors():
    rnd = random.Random(0)
    m = _metric()
    fa = SCHEMA.feature("a")
    for _ in range(300):
        x = _random_vector(rnd)
        y = _random_vector(rnd)
        d = compare(m, x, y)
        assert 0.0 <= d <= 1.0
        assert d == pytest.approx(compare(m, y, x))
        if not any(x.is_missing(f) for f in SCHEMA.scored_features):
            assert compare(m, x, x) == 0.0
        if not x.is_missing(fa):
            same_a = _v(x["a"], y["b"], y["c"], "n")
            assert compare_features(m, x, same_a, [fa]) == 0.0


def test_numpy_nan_is_missing():
    assert is_missing(None)
    assert is_missing(float("nan"))
    assert is_missing(np.float32("nan"))
    assert is_missing(np.float64("nan"))
    assert not is_missing(np.float32(1.5))
    assert not is_missing("nan")
    assert not is_missing(0.0)

    m = _metric()
    d = compare(m, _v(np.float32("nan"), 10.0, "r", "n"), _v(0.0, 10.0, "r", "n"))
    assert d == pytest.approx(1.0 / math.sqrt(3))
