#!/usr/bin/env python
"""ARIMA model with lagged climate covariates, exposed through the CHAP CLI.

One SARIMAX model per location is fitted on ``disease_cases`` with lagged
``rainfall`` and ``mean_temperature`` as exogenous regressors. At prediction
time the fitted parameters are re-applied to ``historic_data``, which may be
more recent than the training data, before forecasting.

Usage:
    python model.py train training_data.csv [config.yaml]
    python model.py predict historic.csv future.csv model.pkl [config.yaml]
    python model.py info
"""
import logging
import warnings
from typing import Dict, List

import numpy as np
import pandas as pd
from statsmodels.tsa.statespace.sarimax import SARIMAX

from chap_sdk.cli import create_chap_cli
from chap_sdk.config import get_config_param
from chap_sdk.predictions import NestedPredictions

logger = logging.getLogger(__name__)

COVARIATES = ("rainfall", "mean_temperature")
TARGET = "disease_cases"


def _lag_columns(lag: int) -> List[str]:
    return [f"{c}_{lag}" for c in COVARIATES]


def add_lagged_features(df: pd.DataFrame, lag: int) -> pd.DataFrame:
    """Add ``<covariate>_<lag>`` columns shifted within each location.

    ``df`` must be sorted by time within each location.
    """
    out = df.copy()
    for col, lag_col in zip(COVARIATES, _lag_columns(lag)):
        out[lag_col] = out.groupby("location", sort=False)[col].shift(lag)
    return out


def _fit_sarimax(y: np.ndarray, exog: np.ndarray, order):
    # suppress convergence warnings on short monthly series
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        model = SARIMAX(
            y,
            exog=exog,
            order=order,
            enforce_stationarity=True,
            enforce_invertibility=True,
            initialization="approximate_diffuse",
        )
        res = model.fit(disp=False, maxiter=200)
    return res


def train_arima(training_data: pd.DataFrame, model_configuration: dict) -> dict:
    lag = int(get_config_param(model_configuration, "lag_periods", default=3))
    n_samples = int(get_config_param(model_configuration, "n_samples", default=100))
    order = tuple(get_config_param(model_configuration, "order", default=[1, 0, 0]))
    exog_cols = _lag_columns(lag)

    df = add_lagged_features(training_data, lag).dropna(subset=exog_cols)
    models = {}
    for loc, ldf in df.groupby("location", sort=True):
        models[loc] = _fit_sarimax(
            ldf[TARGET].to_numpy(dtype=float),
            ldf[exog_cols].to_numpy(dtype=float),
            order,
        )
        logger.debug("Fitted ARIMA%s for %s on %d rows", order, loc, len(ldf))
    return {"models": models, "lag_periods": lag, "n_samples": n_samples, "order": order}


def predict_arima(
    historic_data: pd.DataFrame,
    future_data: pd.DataFrame,
    saved_model: dict,
    model_configuration: dict,
) -> NestedPredictions:
    lag = saved_model["lag_periods"]
    n_samples = int(get_config_param(model_configuration, "n_samples", default=saved_model["n_samples"]))
    rng = np.random.default_rng(get_config_param(model_configuration, "seed"))
    exog_cols = _lag_columns(lag)

    units: List[pd.DataFrame] = []
    samples: List[np.ndarray] = []
    for loc, fut in future_data.groupby("location", sort=False):
        res = saved_model["models"].get(loc)
        if res is None:
            raise ValueError(f"No trained model for location {loc!r}")
        hist = historic_data.loc[historic_data["location"] == loc]
        fut = fut.drop(columns=[TARGET], errors="ignore")

        # lags for the first future periods come from the end of the history
        combined = pd.concat([hist, fut.assign(**{TARGET: np.nan})], ignore_index=True)
        combined = add_lagged_features(combined, lag)
        hist_part = combined.iloc[: len(hist)].dropna(subset=exog_cols)
        fut_part = combined.iloc[len(hist):]
        if fut_part[exog_cols].isna().any().any():
            raise ValueError(f"Not enough history to build lag-{lag} covariates for {loc!r}")

        refit = res.apply(
            hist_part[TARGET].to_numpy(dtype=float),
            exog=hist_part[exog_cols].to_numpy(dtype=float),
        )
        fc = refit.get_forecast(steps=len(fut_part), exog=fut_part[exog_cols].to_numpy(dtype=float))
        mean = np.asarray(fc.predicted_mean, dtype=float)
        sd = np.sqrt(np.maximum(np.asarray(fc.var_pred_mean, dtype=float), 0.0))
        draws = rng.normal(mean[:, None], sd[:, None], size=(len(fut_part), n_samples))

        units.append(fut.reset_index(drop=True))
        samples.extend(np.maximum(draws, 0.0))

    if not units:
        return NestedPredictions(units=future_data.drop(columns=[TARGET], errors="ignore"), samples=[])
    return NestedPredictions(units=pd.concat(units, ignore_index=True), samples=samples)


config_schema: Dict = {
    "title": "ARIMA Model Configuration",
    "type": "object",
    "description": "Configuration for ARIMA model with lagged climate covariates",
    "properties": {
        "lag_periods": {
            "type": "integer",
            "description": "Number of periods to lag rainfall and temperature",
            "default": 3,
            "minimum": 1,
            "maximum": 12,
        },
        "n_samples": {
            "type": "integer",
            "description": "Number of Monte Carlo samples to generate per forecast",
            "default": 100,
            "minimum": 1,
            "maximum": 10000,
        },
        "order": {
            "type": "array",
            "description": "ARIMA (p, d, q) order",
            "default": [1, 0, 0],
        },
        "seed": {
            "type": "integer",
            "description": "Seed for sampling the forecast distribution",
        },
    },
}


if __name__ == "__main__":
    create_chap_cli(train_arima, predict_arima, config_schema)
