from __future__ import annotations
import os
import logging
from typing import List, Optional, Sequence, Tuple
import pandas as pd

from .config import Config
from .predictions import (
    NestedPredictions,
    detect_prediction_format,
    predictions_to_wide,
)

logger = logging.getLogger(__name__)


def detect_time_column(df: pd.DataFrame, candidates: Sequence[str] = Config.time_candidates) -> str:
    """Return the time column of ``df``.

    The first column of ``df`` that is one of ``candidates`` wins; otherwise
    the first column is used and a warning is logged.
    """
    for col in df.columns:
        if col in candidates:
            return col
    if len(df.columns) == 0:
        raise ValueError("Cannot detect a time column in a table without columns")
    first = df.columns[0]
    logger.warning("No standard time column found, using first column: %s", first)
    return first


def detect_key_columns(
    df: pd.DataFrame, candidates: Sequence[str] = Config.key_candidates
) -> Optional[List[str]]:
    """Return the spatial key columns of ``df`` in table order, or None for a univariate series."""
    matches = [c for c in df.columns if c in candidates]
    return matches or None


def time_series_info(df: pd.DataFrame) -> Tuple[str, List[str]]:
    """Return ``(time_col, key_cols)`` recorded by :func:`load_time_series`."""
    time_col = df.attrs.get("time_col") or detect_time_column(df)
    key_cols = df.attrs.get("key_cols")
    if key_cols is None:
        key_cols = detect_key_columns(df) or []
    return time_col, list(key_cols)


def to_time_series(df: pd.DataFrame, cfg: Optional[Config] = None) -> pd.DataFrame:
    """Index ``df`` as a time series keyed by its spatial columns.

    Rows are sorted by key then time and every (key, time) pair must be
    unique. Column values are kept verbatim so time labels such as
    ``2013-04`` round-trip to the output unchanged.
    """
    cfg = cfg or Config()
    time_col = detect_time_column(df, cfg.time_candidates)
    key_cols = detect_key_columns(df, cfg.key_candidates) or []
    if time_col in key_cols:
        key_cols.remove(time_col)

    index_cols = [*key_cols, time_col]
    dupes = df.duplicated(subset=index_cols, keep=False)
    if dupes.any():
        sample = df.loc[dupes, index_cols].drop_duplicates().head(5).to_dict("records")
        raise ValueError(
            f"Duplicated {index_cols} rows: each key must have one row per time period "
            f"(e.g. {sample})"
        )

    out = df.sort_values(index_cols, kind="mergesort").reset_index(drop=True)
    out.attrs["time_col"] = time_col
    out.attrs["key_cols"] = key_cols
    return out


def load_time_series(file_path: str, cfg: Optional[Config] = None) -> pd.DataFrame:
    """Load a CSV file and index it with :func:`to_time_series`."""
    df = pd.read_csv(file_path)
    ts = to_time_series(df, cfg)
    logger.debug(
        "Loaded %s: %d rows, index=%s, keys=%s",
        file_path,
        len(ts),
        ts.attrs["time_col"],
        ts.attrs["key_cols"],
    )
    return ts


def save_predictions(predictions, output_path: str, samples_col: str = "samples") -> str:
    """Write predictions as CSV, converting nested samples to wide columns first."""
    if isinstance(predictions, NestedPredictions):
        predictions = predictions_to_wide(predictions)
    elif not isinstance(predictions, pd.DataFrame):
        raise TypeError(
            f"Predictions must be a DataFrame or NestedPredictions, got {type(predictions).__name__}"
        )
    elif detect_prediction_format(predictions, samples_col=samples_col) == "nested":
        predictions = predictions_to_wide(predictions, samples_col=samples_col)
    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
    predictions.to_csv(output_path, index=False)
    logger.info("Predictions saved to %s", output_path)
    return output_path
