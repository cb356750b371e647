"""Prediction sample format conversion.

Forecasts are carried internally as :class:`NestedPredictions` (one row per
forecast unit, one sample vector per row). Converters translate to and from
the wide CHAP CSV layout (``sample_0 .. sample_{N-1}``), the long layout used
by scoring tools (one row per sample) and a derived quantile layout.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
import numpy as np
import pandas as pd

SAMPLES_COL = "samples"
SAMPLE_PREFIX = "sample_"
SAMPLE_ID_COL = "sample_id"
VALUE_COL = "prediction"
DEFAULT_GROUP_COLS = ("time_period", "location")

DEFAULT_QUANTILES = (
    0.01, 0.025, 0.05, 0.1, 0.15, 0.2, 0.25, 0.3, 0.35, 0.4, 0.45, 0.5,
    0.55, 0.6, 0.65, 0.7, 0.75, 0.8, 0.85, 0.9, 0.95, 0.975, 0.99,
)
DEFAULT_CI_LEVELS = (0.5, 0.9, 0.95)

_SAMPLE_COL_RE = re.compile(r"^sample_(\d+)$")


@dataclass(frozen=True)
class ForecastUnit:
    """Composite key of one forecast unit, e.g. ``(time_period, location)``."""

    columns: Tuple[str, ...]
    values: Tuple[Any, ...]

    def __getitem__(self, col: str) -> Any:
        return self.values[self.columns.index(col)]

    def as_dict(self) -> Dict[str, Any]:
        return dict(zip(self.columns, self.values))


@dataclass
class NestedPredictions:
    """Forecast units with an owned sample vector per unit.

    ``units`` holds the metadata columns (one row per forecast unit) and
    ``samples[i]`` the ordered draws for row ``i``. Sample vectors may differ
    in length; only the wide layout requires them to be equal.
    """

    units: pd.DataFrame
    samples: List[np.ndarray]
    samples_col: str = SAMPLES_COL

    def __post_init__(self):
        if len(self.units) != len(self.samples):
            raise ValueError(
                f"Got {len(self.samples)} sample vectors for {len(self.units)} forecast units"
            )
        if self.samples_col in self.units.columns:
            raise ValueError(
                f"Metadata must not contain the sample-set column '{self.samples_col}'"
            )
        self.units = self.units.reset_index(drop=True)
        self.samples = [np.array(s, dtype=float).reshape(-1) for s in self.samples]

    def __len__(self) -> int:
        return len(self.units)

    @property
    def key_columns(self) -> List[str]:
        return list(self.units.columns)

    def keys(self) -> List[ForecastUnit]:
        cols = tuple(self.units.columns)
        return [ForecastUnit(cols, vals) for vals in self.units.itertuples(index=False, name=None)]

    def sample_counts(self) -> np.ndarray:
        return np.array([len(s) for s in self.samples], dtype=int)

    def to_frame(self) -> pd.DataFrame:
        """List-column view: metadata plus an object column of sample arrays."""
        out = self.units.copy()
        col = pd.Series([s.copy() for s in self.samples], index=out.index, dtype=object)
        out[self.samples_col] = col
        return out

    @classmethod
    def from_frame(cls, df: pd.DataFrame, samples_col: str = SAMPLES_COL) -> "NestedPredictions":
        if samples_col not in df.columns:
            raise ValueError(
                f"Input must have a '{samples_col}' column containing sample vectors"
            )
        units = df.drop(columns=[samples_col])
        samples = [_as_sample_vector(v) for v in df[samples_col]]
        return cls(units=units, samples=samples, samples_col=samples_col)


def _as_sample_vector(value) -> np.ndarray:
    # a scalar is a deterministic single-sample forecast
    if np.ndim(value) == 0:
        return np.array([value], dtype=float)
    return np.asarray(value, dtype=float).reshape(-1)


PredictionsLike = Union[NestedPredictions, pd.DataFrame]


def _as_nested(predictions: PredictionsLike, samples_col: str) -> NestedPredictions:
    if isinstance(predictions, NestedPredictions):
        return predictions
    return NestedPredictions.from_frame(predictions, samples_col=samples_col)


def sample_columns(df: pd.DataFrame) -> List[str]:
    """Return the ``sample_<n>`` columns of ``df`` sorted by numeric suffix."""
    found = []
    for col in df.columns:
        m = _SAMPLE_COL_RE.match(str(col))
        if m:
            found.append((int(m.group(1)), col))
    return [col for _, col in sorted(found, key=lambda t: t[0])]


def _nan_quantile(values: np.ndarray, probs: Sequence[float]) -> np.ndarray:
    finite = values[~np.isnan(values)]
    if finite.size == 0:
        return np.full(len(probs), np.nan)
    return np.quantile(finite, probs)


# ---------- wide <-> nested ----------

def predictions_from_wide(wide_df: pd.DataFrame, samples_col: str = SAMPLES_COL) -> NestedPredictions:
    """Convert wide CHAP predictions (one column per sample) to nested form.

    Parameters
    ----------
    wide_df : pd.DataFrame
        Metadata columns plus ``sample_0``, ``sample_1``, ... columns. The
        sample columns may be unsorted or sparse; they are ordered by their
        numeric suffix.
    samples_col : str, optional
        Name of the sample-set column of the result.

    Returns
    -------
    NestedPredictions
        One unit per input row, metadata copied in original column order.
    """
    cols = sample_columns(wide_df)
    if not cols:
        raise ValueError(
            "No sample columns found. Expected columns named 'sample_0', 'sample_1', etc."
        )
    meta_cols = [c for c in wide_df.columns if c not in set(cols)]
    if samples_col in meta_cols:
        raise ValueError(
            f"Wide predictions have a metadata column named '{samples_col}', which clashes "
            "with the nested sample-set column; rename it or pass a different samples_col"
        )
    matrix = wide_df[cols].to_numpy(dtype=float)
    units = wide_df[meta_cols].copy()
    return NestedPredictions(units=units, samples=list(matrix), samples_col=samples_col)


def predictions_to_wide(predictions: PredictionsLike, samples_col: str = SAMPLES_COL) -> pd.DataFrame:
    """Convert nested predictions to the wide CHAP CSV layout.

    All forecast units must carry the same number of samples; nothing is
    padded or truncated.
    """
    nested = _as_nested(predictions, samples_col)
    units = nested.units.copy()
    if len(nested) == 0:
        return units

    counts = nested.sample_counts()
    n_samples = int(counts[0])
    if not (counts == n_samples).all():
        raise ValueError(
            "All rows must have the same number of samples "
            f"(found lengths {sorted(set(counts.tolist()))})"
        )

    names = [f"{SAMPLE_PREFIX}{i}" for i in range(n_samples)]
    matrix = np.vstack(nested.samples) if n_samples else np.empty((len(nested), 0))
    samples = pd.DataFrame(matrix, columns=names, index=units.index)
    return pd.concat([units, samples], axis=1)


# ---------- nested <-> long ----------

def predictions_to_long(
    predictions: PredictionsLike,
    value_col: str = VALUE_COL,
    sample_col: str = SAMPLE_ID_COL,
    samples_col: str = SAMPLES_COL,
) -> pd.DataFrame:
    """One row per (forecast unit, sample); ``sample_col`` counts from 1."""
    nested = _as_nested(predictions, samples_col)
    for col in (sample_col, value_col):
        if col in nested.units.columns:
            raise ValueError(
                f"Metadata column '{col}' clashes with the long-format output columns"
            )
    counts = nested.sample_counts()
    out = nested.units.loc[nested.units.index.repeat(counts)].reset_index(drop=True)
    if counts.sum():
        sample_ids = np.concatenate([np.arange(1, n + 1) for n in counts])
        values = np.concatenate(nested.samples)
    else:
        sample_ids = np.array([], dtype=int)
        values = np.array([], dtype=float)
    out[sample_col] = sample_ids
    out[value_col] = values
    return out


def predictions_from_long(
    long_df: pd.DataFrame,
    value_col: str = VALUE_COL,
    sample_col: str = SAMPLE_ID_COL,
    group_cols: Sequence[str] = DEFAULT_GROUP_COLS,
    samples_col: str = SAMPLES_COL,
) -> NestedPredictions:
    """Collect long-format samples back into one sample vector per unit.

    Units are emitted in order of first appearance. When ``sample_col`` is
    present the samples of each unit are ordered by it; otherwise row order
    is kept. Columns outside ``group_cols`` are dropped; with no
    ``group_cols`` every row belongs to one forecast unit.
    """
    group_cols = list(group_cols)
    for col in [value_col, *group_cols]:
        if col not in long_df.columns:
            raise ValueError(f"Column '{col}' not found in data")

    df = long_df.reset_index(drop=True)
    if group_cols:
        codes = df.groupby(group_cols, sort=False, dropna=False).ngroup().to_numpy()
    else:
        codes = np.zeros(len(df), dtype=int)
    df = df.assign(_unit=codes)
    order = ["_unit", sample_col] if sample_col in df.columns else ["_unit"]
    df = df.sort_values(order, kind="mergesort")

    units = df.drop_duplicates("_unit")[group_cols]
    samples = [g[value_col].to_numpy(dtype=float) for _, g in df.groupby("_unit", sort=True)]
    return NestedPredictions(units=units, samples=samples, samples_col=samples_col)


# ---------- quantiles and summary ----------

def predictions_to_quantiles(
    predictions: PredictionsLike,
    probs: Sequence[float] = DEFAULT_QUANTILES,
    samples_col: str = SAMPLES_COL,
) -> pd.DataFrame:
    """Empirical quantiles per forecast unit, long shaped.

    Uses linear interpolation between order statistics (R type 7) and
    ignores missing samples. The result has columns ``quantile`` and
    ``value`` after the metadata, ``len(probs)`` rows per unit.
    """
    probs = np.asarray(list(probs), dtype=float)
    if ((probs < 0) | (probs > 1)).any():
        raise ValueError(f"Quantile probabilities must lie in [0, 1], got {probs.tolist()}")
    nested = _as_nested(predictions, samples_col)

    n_probs = len(probs)
    out = nested.units.loc[nested.units.index.repeat(n_probs)].reset_index(drop=True)
    out["quantile"] = np.tile(probs, len(nested))
    if len(nested):
        out["value"] = np.concatenate([_nan_quantile(s, probs) for s in nested.samples])
    else:
        out["value"] = np.array([], dtype=float)
    return out


def predictions_summary(
    predictions: PredictionsLike,
    ci_levels: Sequence[float] = DEFAULT_CI_LEVELS,
    samples_col: str = SAMPLES_COL,
) -> pd.DataFrame:
    """Add ``mean``, ``median`` and ``lower_<L>``/``upper_<L>`` interval columns.

    The sample-set column is kept. Level 0.9 yields ``lower_90``/``upper_90``
    at the 5th/95th percentiles.
    """
    nested = _as_nested(predictions, samples_col)
    out = nested.to_frame()

    means = []
    for s in nested.samples:
        finite = s[~np.isnan(s)]
        means.append(finite.mean() if finite.size else np.nan)
    out["mean"] = np.array(means, dtype=float)
    out["median"] = np.array([_nan_quantile(s, [0.5])[0] for s in nested.samples], dtype=float)

    for level in ci_levels:
        if not 0 < level < 1:
            raise ValueError(f"Confidence level must lie in (0, 1), got {level}")
        lower_prob = (1 - level) / 2
        upper_prob = 1 - lower_prob
        pct = int(round(level * 100))
        bounds = np.array(
            [_nan_quantile(s, [lower_prob, upper_prob]) for s in nested.samples], dtype=float
        ).reshape(-1, 2)
        out[f"lower_{pct}"] = bounds[:, 0]
        out[f"upper_{pct}"] = bounds[:, 1]
    return out


# ---------- detection ----------

def has_prediction_samples(df: PredictionsLike, samples_col: str = SAMPLES_COL) -> bool:
    if isinstance(df, NestedPredictions):
        return True
    if samples_col in df.columns:
        return True
    return bool(sample_columns(df))


def detect_prediction_format(df: PredictionsLike, samples_col: str = SAMPLES_COL) -> str:
    """Return ``"nested"``, ``"wide"``, ``"long"`` or ``"none"``.

    Only column names and dtypes are inspected. Checks run in that order and
    the first match wins.
    """
    if isinstance(df, NestedPredictions):
        return "nested"
    if samples_col in df.columns and df[samples_col].dtype == object:
        return "nested"
    if sample_columns(df):
        return "wide"
    if SAMPLE_ID_COL in df.columns and VALUE_COL in df.columns:
        return "long"
    return "none"


def as_nested(
    df: PredictionsLike,
    samples_col: str = SAMPLES_COL,
    group_cols: Optional[Sequence[str]] = None,
) -> NestedPredictions:
    """Parse any sample-bearing layout into :class:`NestedPredictions`.

    Long input is grouped by ``group_cols`` (default: every column other than
    ``sample_id`` and ``prediction``).
    """
    fmt = detect_prediction_format(df, samples_col=samples_col)
    if fmt == "nested":
        return _as_nested(df, samples_col)
    if fmt == "wide":
        return predictions_from_wide(df, samples_col=samples_col)
    if fmt == "long":
        if group_cols is None:
            group_cols = [c for c in df.columns if c not in (SAMPLE_ID_COL, VALUE_COL)]
        return predictions_from_long(df, group_cols=group_cols, samples_col=samples_col)
    raise ValueError(
        "No prediction samples found. Expected a 'samples' column, 'sample_<n>' columns, "
        "or 'sample_id'/'prediction' columns"
    )
