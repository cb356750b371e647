from __future__ import annotations
import os
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union
import pandas as pd

from .config import Config
from .data import load_time_series
from .pipeline import PredictFn, TrainFn
from .predictions import ForecastUnit, NestedPredictions

logger = logging.getLogger(__name__)

EXAMPLE_FILES = ("training_data", "historic_data", "future_data", "predictions")
UNIT_COLUMNS = ("time_period", "location")


@dataclass
class ExampleData:
    training_data: pd.DataFrame
    historic_data: pd.DataFrame
    future_data: pd.DataFrame
    predictions: pd.DataFrame  # expected output layout


@dataclass
class ValidationResult:
    success: bool
    errors: List[str] = field(default_factory=list)
    n_predictions: Optional[int] = None


@dataclass
class DatasetValidation:
    name: str
    success: bool
    errors: List[str] = field(default_factory=list)
    n_predictions: Optional[int] = None


@dataclass
class ValidationReport:
    success: bool
    results: Dict[str, DatasetValidation] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)


def load_example_data(directory: str, cfg: Optional[Config] = None) -> ExampleData:
    """Read ``training_data.csv``, ``historic_data.csv``, ``future_data.csv`` and
    ``predictions.csv`` from ``directory``."""
    paths = {name: os.path.join(directory, f"{name}.csv") for name in EXAMPLE_FILES}
    missing = [p for p in paths.values() if not os.path.isfile(p)]
    if missing:
        raise FileNotFoundError(f"Example data not found: {missing}")
    return ExampleData(
        training_data=load_time_series(paths["training_data"], cfg),
        historic_data=load_time_series(paths["historic_data"], cfg),
        future_data=load_time_series(paths["future_data"], cfg),
        predictions=pd.read_csv(paths["predictions"]),
    )


def _unit_counter(df: pd.DataFrame) -> Counter:
    keys = df[list(UNIT_COLUMNS)].astype(str)
    return Counter(ForecastUnit(UNIT_COLUMNS, vals) for vals in keys.itertuples(index=False, name=None))


def _describe(units: Counter) -> str:
    first = next(iter(units))
    return ", ".join(f"{k}={v}" for k, v in first.as_dict().items())


def validate_model_io(
    train_fn: TrainFn,
    predict_fn: PredictFn,
    example_data: ExampleData,
    model_configuration: Optional[Dict[str, Any]] = None,
) -> ValidationResult:
    """Train and predict on ``example_data`` and compare against its expected predictions.

    Checks that the output is a table with ``time_period`` and ``location``
    columns and covers exactly the expected ``time_period`` x ``location``
    combinations. Exceptions raised by the model functions are reported as
    errors rather than propagated.
    """
    model_configuration = dict(model_configuration or {})
    errors: List[str] = []

    try:
        model = train_fn(example_data.training_data, model_configuration)
        predictions = predict_fn(
            example_data.historic_data,
            example_data.future_data,
            model,
            model_configuration,
        )
    except Exception as e:
        logger.debug("Model raised during validation", exc_info=True)
        return ValidationResult(success=False, errors=[f"Error: {e}"])

    if isinstance(predictions, NestedPredictions):
        predictions = predictions.to_frame()
    if not isinstance(predictions, pd.DataFrame):
        return ValidationResult(success=False, errors=["Predictions must be a data frame"])

    n_predictions = len(predictions)
    for col in UNIT_COLUMNS:
        if col not in predictions.columns:
            errors.append(f"Predictions missing required column: {col}")

    expected = example_data.predictions
    if n_predictions != len(expected):
        errors.append(f"Row count mismatch: expected {len(expected)}, got {n_predictions}")

    if set(UNIT_COLUMNS) <= set(predictions.columns):
        expected_units = _unit_counter(expected)
        actual_units = _unit_counter(predictions)
        missing = expected_units - actual_units
        extra = actual_units - expected_units
        if missing:
            errors.append(
                f"Missing {sum(missing.values())} time_period×location combinations "
                f"(e.g. {_describe(missing)})"
            )
        if extra:
            errors.append(
                f"Extra {sum(extra.values())} time_period×location combinations "
                f"(e.g. {_describe(extra)})"
            )

    return ValidationResult(success=not errors, errors=errors, n_predictions=n_predictions)


def validate_model_io_all(
    train_fn: TrainFn,
    predict_fn: PredictFn,
    datasets: Mapping[str, Union[ExampleData, str]],
    model_configuration: Optional[Dict[str, Any]] = None,
) -> ValidationReport:
    """Run :func:`validate_model_io` for every named dataset.

    ``datasets`` maps a name to :class:`ExampleData` or to a directory
    readable by :func:`load_example_data`.
    """
    if not datasets:
        return ValidationReport(success=False, errors=["No example datasets given"])

    results: Dict[str, DatasetValidation] = {}
    all_errors: List[str] = []
    total = len(datasets)
    for idx, (name, data) in enumerate(datasets.items(), 1):
        logger.info("(%d/%d) Validating %s", idx, total, name)
        if not isinstance(data, ExampleData):
            try:
                data = load_example_data(data)
            except (OSError, ValueError) as e:
                msg = f"Error loading data for {name}: {e}"
                all_errors.append(msg)
                results[name] = DatasetValidation(name=name, success=False, errors=[msg])
                continue

        res = validate_model_io(train_fn, predict_fn, data, model_configuration)
        results[name] = DatasetValidation(
            name=name,
            success=res.success,
            errors=res.errors,
            n_predictions=res.n_predictions,
        )
        if not res.success:
            all_errors.append(f"[{name}] " + "; ".join(res.errors))

    return ValidationReport(success=not all_errors, results=results, errors=all_errors)
