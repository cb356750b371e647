from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import os
import pickle
import logging

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class SavedModel:
    """A user model object together with the configuration it was trained with."""

    model: Any
    model_configuration: Dict[str, Any] = field(default_factory=dict)
    trained_at: str = field(default_factory=_utc_now)
    model_name: Optional[str] = None

    def save(self, path: str) -> str:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "wb") as f:
            pickle.dump(self, f)
        logger.info("Model saved to %s", path)
        return path

    @staticmethod
    def load(path: str) -> "SavedModel":
        with open(path, "rb") as f:
            obj = pickle.load(f)
        if not isinstance(obj, SavedModel):
            # pickled by other tooling; keep the raw object usable
            logger.debug("%s does not hold a SavedModel, wrapping %s", path, type(obj).__name__)
            obj = SavedModel(model=obj, trained_at="")
        return obj


def save_model(
    model: Any,
    output_path: str = "model.pkl",
    model_configuration: Optional[Dict[str, Any]] = None,
    model_name: Optional[str] = None,
) -> str:
    saved = SavedModel(
        model=model,
        model_configuration=dict(model_configuration or {}),
        model_name=model_name,
    )
    return saved.save(output_path)


def load_model(path: str) -> SavedModel:
    if not os.path.exists(path):
        raise FileNotFoundError(f"Model file not found: {path}")
    return SavedModel.load(path)
