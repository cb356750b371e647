from __future__ import annotations
from typing import Any, Callable, Dict, Optional
import os
import logging
import pandas as pd

from .config import Config, load_config
from .data import load_time_series, save_predictions, time_series_info
from .model import SavedModel, load_model
from .predictions import (
    NestedPredictions,
    as_nested,
    detect_prediction_format,
    predictions_summary,
)

logger = logging.getLogger(__name__)

TrainFn = Callable[[pd.DataFrame, Dict[str, Any]], Any]
PredictFn = Callable[[Optional[pd.DataFrame], pd.DataFrame, Any, Dict[str, Any]], Any]


def _require_file(path: str, label: str) -> None:
    if not os.path.isfile(path):
        raise FileNotFoundError(f"{label} file not found: {path}")


def _log_prediction_summary(predictions, cfg: Config) -> None:
    """Log row count and per-location sample means of the predictions."""
    if isinstance(predictions, pd.DataFrame):
        fmt = detect_prediction_format(predictions, samples_col=cfg.samples_col)
        if fmt in ("nested", "wide"):
            predictions = as_nested(predictions, samples_col=cfg.samples_col)
        else:
            logger.info("Generated %d predictions (no samples)", len(predictions))
            return
    if not isinstance(predictions, NestedPredictions):
        return

    frame = predictions_summary(predictions, ci_levels=(), samples_col=cfg.samples_col)
    logger.info("Generated %d predictions", len(frame))
    if "location" in frame.columns and len(frame):
        summary = frame.groupby("location", sort=True)["mean"].agg(["size", "mean", "sum"])
        for loc, row in summary.iterrows():
            logger.info(
                "  %s: n=%d mean_predicted=%.3f total_predicted=%.3f",
                loc,
                row["size"],
                row["mean"],
                row["sum"],
            )


def run_train(
    train_fn: TrainFn,
    training_data: str,
    config_path: Optional[str] = None,
    cfg: Optional[Config] = None,
    model_out: Optional[str] = None,
) -> str:
    """Load training data and configuration, train, and pickle the model.

    Returns the path of the saved model.
    """
    cfg = cfg or Config()
    _require_file(training_data, "Training data")

    logger.info("Loading training data from %s", training_data)
    train_df = load_time_series(training_data, cfg)
    time_col, key_cols = time_series_info(train_df)
    logger.info("Training data: %d rows, index=%s, keys=%s", len(train_df), time_col, key_cols)

    model_configuration = load_config(config_path)
    logger.info("Training model")
    model = train_fn(train_df, model_configuration)

    saved = SavedModel(
        model=model,
        model_configuration=model_configuration,
        model_name=getattr(train_fn, "__name__", None),
    )
    return saved.save(model_out or cfg.model_out)


def run_predict(
    predict_fn: PredictFn,
    historic_data: str,
    future_data: str,
    model_path: str,
    config_path: Optional[str] = None,
    cfg: Optional[Config] = None,
    output: Optional[str] = None,
) -> str:
    """Load inputs and the saved model, predict, and write the predictions CSV.

    When no configuration file is given the configuration stored with the
    model at training time is reused. Returns the path of the predictions.
    """
    cfg = cfg or Config()
    _require_file(historic_data, "Historic data")
    _require_file(future_data, "Future data")
    _require_file(model_path, "Model")

    logger.info("Loading model from %s", model_path)
    saved = load_model(model_path)

    logger.info("Loading historic data from %s", historic_data)
    historic_df = load_time_series(historic_data, cfg)
    logger.info("Loading future data from %s", future_data)
    future_df = load_time_series(future_data, cfg)
    time_col, key_cols = time_series_info(future_df)
    logger.info(
        "Future data: %d rows, %d time periods, keys=%s",
        len(future_df),
        future_df[time_col].nunique(),
        key_cols,
    )

    model_configuration = load_config(config_path) if config_path else dict(saved.model_configuration)

    logger.info("Generating predictions")
    predictions = predict_fn(historic_df, future_df, saved.model, model_configuration)
    _log_prediction_summary(predictions, cfg)
    return save_predictions(predictions, output or cfg.predictions_out, samples_col=cfg.samples_col)
