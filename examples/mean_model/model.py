#!/usr/bin/env python
"""Mean baseline model exposed through the CHAP CLI.

Usage:
    python model.py train training_data.csv
    python model.py predict historic.csv future.csv model.pkl
    python model.py info
"""
import numpy as np
import pandas as pd

from chap_sdk.cli import create_chap_cli
from chap_sdk.config import get_config_param


def train_mean_model(training_data: pd.DataFrame, model_configuration: dict) -> dict:
    """Mean ``disease_cases`` per location.

    Locations with fewer than ``min_observations`` non-missing values are left
    out and predicted as 0.
    """
    if "disease_cases" not in training_data.columns:
        raise ValueError("training_data must have a 'disease_cases' column")
    min_obs = int(get_config_param(model_configuration, "min_observations", default=1))
    grp = training_data.groupby("location")["disease_cases"]
    means = grp.mean()[grp.count() >= min_obs]
    return {"means": means.to_dict(), "config": dict(model_configuration)}


def predict_mean_model(historic_data, future_data: pd.DataFrame, saved_model: dict, model_configuration: dict):
    """One deterministic sample per forecast unit: the location mean (0 if unseen)."""
    out = future_data.drop(columns=["disease_cases"], errors="ignore").copy()
    means = out["location"].map(saved_model["means"]).fillna(0.0)
    out["samples"] = pd.Series([np.array([m]) for m in means], index=out.index, dtype=object)
    return out


config_schema = {
    "title": "Mean Model Configuration",
    "type": "object",
    "description": "Configuration schema for the mean baseline model",
    "properties": {
        "min_observations": {
            "type": "integer",
            "description": "Minimum number of observations required per location",
            "default": 1,
            "minimum": 1,
        },
    },
}


if __name__ == "__main__":
    create_chap_cli(train_mean_model, predict_mean_model, config_schema)
