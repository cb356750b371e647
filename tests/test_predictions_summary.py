import numpy as np
import pandas as pd
import pytest

from chap_sdk.predictions import (
    DEFAULT_QUANTILES,
    NestedPredictions,
    predictions_summary,
    predictions_to_quantiles,
)


def _two_units():
    return pd.DataFrame(
        {
            "time_period": ["2013-04", "2013-05"],
            "location": ["Bokeo", "Bokeo"],
            "samples": pd.Series([np.arange(1, 101), np.arange(51, 151)], dtype=object),
        }
    )


def test_to_quantiles_linear_interpolation():
    nested = pd.DataFrame(
        {
            "time_period": ["2013-04"],
            "location": ["Bokeo"],
            "samples": pd.Series([np.arange(1, 101)], dtype=object),
        }
    )
    out = predictions_to_quantiles(nested, probs=[0.25, 0.5, 0.75])
    assert len(out) == 3
    assert out.columns.tolist() == ["time_period", "location", "quantile", "value"]
    assert out["quantile"].tolist() == [0.25, 0.5, 0.75]
    assert out.loc[out["quantile"] == 0.5, "value"].iloc[0] == pytest.approx(50.5)
    assert out.loc[out["quantile"] == 0.25, "value"].iloc[0] == pytest.approx(25.75)


def test_to_quantiles_default_probabilities():
    out = predictions_to_quantiles(_two_units())
    assert len(out) == 2 * len(DEFAULT_QUANTILES)
    assert out["quantile"].iloc[0] == 0.01
    assert out["quantile"].iloc[-1] == 0.99


def test_to_quantiles_ignores_missing_samples():
    nested = NestedPredictions(
        units=pd.DataFrame({"location": ["A", "B"]}),
        samples=[np.array([1.0, np.nan, 3.0]), np.array([np.nan])],
    )
    out = predictions_to_quantiles(nested, probs=[0.5])
    assert out["value"].iloc[0] == pytest.approx(2.0)
    assert np.isnan(out["value"].iloc[1])


def test_to_quantiles_rejects_bad_probabilities():
    with pytest.raises(ValueError, match="Quantile probabilities"):
        predictions_to_quantiles(_two_units(), probs=[0.5, 1.5])


def test_summary_adds_statistics_and_keeps_samples():
    out = predictions_summary(_two_units(), ci_levels=[0.5, 0.9])
    for col in ["samples", "mean", "median", "lower_50", "upper_50", "lower_90", "upper_90"]:
        assert col in out.columns
    assert out["mean"].tolist() == pytest.approx([50.5, 100.5])
    assert out["median"].tolist() == pytest.approx([50.5, 100.5])
    assert not out[["lower_50", "upper_50", "lower_90", "upper_90"]].isna().any().any()
    assert out.loc[0, "lower_90"] == pytest.approx(np.quantile(np.arange(1, 101), 0.05))
    assert out.loc[0, "upper_90"] == pytest.approx(np.quantile(np.arange(1, 101), 0.95))


def test_summary_default_levels_are_named_by_percentage():
    out = predictions_summary(_two_units())
    assert {"lower_50", "upper_50", "lower_90", "upper_90", "lower_95", "upper_95"} <= set(out.columns)


def test_summary_mean_ignores_missing():
    nested = NestedPredictions(
        units=pd.DataFrame({"location": ["A"]}),
        samples=[np.array([1.0, np.nan, 5.0])],
    )
    out = predictions_summary(nested, ci_levels=[])
    assert out.loc[0, "mean"] == pytest.approx(3.0)


def test_summary_rejects_bad_level():
    with pytest.raises(ValueError, match="Confidence level"):
        predictions_summary(_two_units(), ci_levels=[1.0])
