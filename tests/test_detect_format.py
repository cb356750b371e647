import numpy as np
import pandas as pd
import pytest

from chap_sdk.predictions import (
    NestedPredictions,
    as_nested,
    detect_prediction_format,
    has_prediction_samples,
    predictions_from_wide,
)


def test_has_samples_nested():
    df = pd.DataFrame({"time_period": ["2013-04"], "location": ["Bokeo"], "samples": [[10, 12, 8]]})
    assert has_prediction_samples(df)


def test_has_samples_wide():
    df = pd.DataFrame({"time_period": ["2013-04"], "location": ["Bokeo"], "sample_0": [10], "sample_1": [12]})
    assert has_prediction_samples(df)


def test_has_samples_none():
    df = pd.DataFrame({"time_period": ["2013-04"], "location": ["Bokeo"], "disease_cases": [10]})
    assert not has_prediction_samples(df)


def test_has_samples_container():
    nested = NestedPredictions(units=pd.DataFrame({"location": ["A"]}), samples=[np.array([1.0])])
    assert has_prediction_samples(nested)


@pytest.mark.parametrize(
    "df, expected",
    [
        (pd.DataFrame({"time_period": ["2013-04"], "samples": [[10, 12, 8]]}), "nested"),
        (pd.DataFrame({"time_period": ["2013-04"], "sample_0": [10], "sample_1": [12]}), "wide"),
        (pd.DataFrame({"time_period": ["2013-04"] * 2, "sample_id": [1, 2], "prediction": [10, 12]}), "long"),
        (pd.DataFrame({"time_period": ["2013-04"], "disease_cases": [10]}), "none"),
    ],
)
def test_detect_prediction_format(df, expected):
    assert detect_prediction_format(df) == expected


def test_detect_nested_wins_over_wide():
    df = pd.DataFrame({"samples": [[1.0, 2.0]], "sample_0": [1.0]})
    assert detect_prediction_format(df) == "nested"


def test_detect_container_is_nested():
    nested = predictions_from_wide(pd.DataFrame({"location": ["A"], "sample_0": [1.0]}))
    assert detect_prediction_format(nested) == "nested"


def test_as_nested_parses_each_layout():
    wide = pd.DataFrame({"location": ["A", "B"], "sample_0": [1.0, 3.0], "sample_1": [2.0, 4.0]})
    long_df = pd.DataFrame({"location": ["A", "A", "B", "B"], "sample_id": [1, 2, 1, 2], "prediction": [1.0, 2.0, 3.0, 4.0]})
    for df in (wide, long_df):
        nested = as_nested(df)
        assert nested.key_columns == ["location"]
        np.testing.assert_array_equal(nested.samples[1], [3.0, 4.0])


def test_as_nested_rejects_tables_without_samples():
    with pytest.raises(ValueError, match="No prediction samples found"):
        as_nested(pd.DataFrame({"location": ["A"], "disease_cases": [1]}))
