import importlib.util
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from chap_sdk.predictions import NestedPredictions, predictions_to_wide
from chap_sdk.validation import ExampleData, validate_model_io

EXAMPLES = Path(__file__).resolve().parents[1] / "examples"


def _load_example(name):
    spec = importlib.util.spec_from_file_location(f"example_{name}", EXAMPLES / name / "model.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture(scope="module")
def mean_model():
    return _load_example("mean_model")


@pytest.fixture(scope="module")
def arima_model():
    return _load_example("arima_model")


def _monthly_data(n_months=36, locations=("A", "B"), seed=0):
    rng = np.random.default_rng(seed)
    periods = pd.period_range("2013-01", periods=n_months, freq="M").astype(str)
    frames = []
    for i, loc in enumerate(locations):
        t = np.arange(n_months)
        rainfall = 100 + 50 * np.sin(2 * np.pi * t / 12) + rng.normal(0, 5, n_months)
        temperature = 25 + 3 * np.cos(2 * np.pi * t / 12) + rng.normal(0, 0.5, n_months)
        cases = np.maximum(10 * (i + 1) + 0.1 * rainfall + rng.normal(0, 2, n_months), 0).round()
        frames.append(
            pd.DataFrame(
                {
                    "time_period": periods,
                    "location": loc,
                    "rainfall": rainfall,
                    "mean_temperature": temperature,
                    "disease_cases": cases,
                }
            )
        )
    return pd.concat(frames, ignore_index=True)


def _split(df, n_train):
    periods = sorted(df["time_period"].unique())
    train_periods = set(periods[:n_train])
    train = df[df["time_period"].isin(train_periods)].reset_index(drop=True)
    future = df[~df["time_period"].isin(train_periods)].drop(columns=["disease_cases"]).reset_index(drop=True)
    return train, future


def test_mean_model_predicts_location_means(mean_model):
    train, future = _split(_monthly_data(n_months=6), 4)
    model = mean_model.train_mean_model(train, {})
    out = mean_model.predict_mean_model(train, future, model, {})
    assert len(out) == len(future)
    assert "disease_cases" not in out.columns
    expected = train.groupby("location")["disease_cases"].mean()
    for loc, samples in zip(out["location"], out["samples"]):
        np.testing.assert_allclose(samples, [expected[loc]])


def test_mean_model_unseen_location_and_min_observations(mean_model):
    train = pd.DataFrame(
        {"time_period": ["2013-01", "2013-02", "2013-01"], "location": ["A", "A", "B"], "disease_cases": [2.0, 4.0, 9.0]}
    )
    future = pd.DataFrame({"time_period": ["2013-03"] * 3, "location": ["A", "B", "C"]})
    model = mean_model.train_mean_model(train, {"min_observations": 2})
    assert model["means"] == {"A": 3.0}
    out = mean_model.predict_mean_model(train, future, model, {})
    assert [s[0] for s in out["samples"]] == [3.0, 0.0, 0.0]


def test_mean_model_passes_validation(mean_model):
    train, future = _split(_monthly_data(n_months=6), 4)
    data = ExampleData(
        training_data=train,
        historic_data=train,
        future_data=future,
        predictions=future[["time_period", "location"]].assign(sample_0=0.0),
    )
    result = validate_model_io(mean_model.train_mean_model, mean_model.predict_mean_model, data)
    assert result.success, result.errors


def test_add_lagged_features_shifts_within_location(arima_model):
    df = _monthly_data(n_months=5)
    lagged = arima_model.add_lagged_features(df, 2)
    a = lagged[lagged["location"] == "A"]
    assert a["rainfall_2"].isna().sum() == 2
    assert a["rainfall_2"].iloc[2] == pytest.approx(a["rainfall"].iloc[0])
    b = lagged[lagged["location"] == "B"]
    assert b["mean_temperature_2"].isna().sum() == 2


def test_arima_model_produces_nonnegative_samples(arima_model):
    train, future = _split(_monthly_data(), 33)
    config = {"lag_periods": 3, "n_samples": 20, "seed": 42}
    model = arima_model.train_arima(train, config)
    assert set(model["models"]) == {"A", "B"}

    preds = arima_model.predict_arima(train, future, model, config)
    assert isinstance(preds, NestedPredictions)
    assert len(preds) == len(future)
    assert preds.sample_counts().tolist() == [20] * len(future)
    assert all(np.all(s >= 0) for s in preds.samples)
    assert all(np.all(np.isfinite(s)) for s in preds.samples)

    wide = predictions_to_wide(preds)
    assert wide.columns[-1] == "sample_19"
    assert "disease_cases" not in wide.columns


def test_arima_model_is_reproducible_with_seed(arima_model):
    train, future = _split(_monthly_data(), 33)
    config = {"n_samples": 5, "seed": 7}
    model = arima_model.train_arima(train, config)
    first = arima_model.predict_arima(train, future, model, config)
    second = arima_model.predict_arima(train, future, model, config)
    for a, b in zip(first.samples, second.samples):
        np.testing.assert_array_equal(a, b)


def test_arima_model_rejects_unknown_location(arima_model):
    train, future = _split(_monthly_data(), 33)
    model = arima_model.train_arima(train, {"n_samples": 5})
    future = future.assign(location="Z")
    with pytest.raises(ValueError, match="No trained model"):
        arima_model.predict_arima(train, future, model, {})
