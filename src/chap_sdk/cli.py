import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

import yaml

from .config import Config
from .pipeline import PredictFn, TrainFn, run_predict, run_train

USAGE = """\
Usage: python model.py <subcommand> [args]

Subcommands:
  train   <training_data.csv> [config.yaml]
  predict <historic.csv> <future.csv> <model.pkl> [config.yaml]
  info
"""


def build_parser(prog: str = "model.py", cfg: Optional[Config] = None) -> argparse.ArgumentParser:
    cfg = cfg or Config()
    ap = argparse.ArgumentParser(
        prog=prog,
        description="CHAP-compatible model command line interface.",
        epilog=USAGE,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    ap.add_argument("--log-level", default="INFO", help="Logging level")
    sub = ap.add_subparsers(dest="command", metavar="{train,predict,info}")

    tr = sub.add_parser("train", help="Train the model and save it")
    tr.add_argument("training_data", help="Path to training data CSV")
    tr.add_argument("config", nargs="?", default=None, help="Optional model configuration YAML/JSON")
    tr.add_argument("--model-out", default=cfg.model_out, help="Output path for the pickled model")

    pr = sub.add_parser("predict", help="Generate predictions with a saved model")
    pr.add_argument("historic_data", help="Path to historic data CSV")
    pr.add_argument("future_data", help="Path to future data CSV (with covariates)")
    pr.add_argument("model", help="Path to the pickled model")
    pr.add_argument("config", nargs="?", default=None, help="Optional model configuration YAML/JSON")
    pr.add_argument("--output", default=cfg.predictions_out, help="Output path for predictions CSV")

    sub.add_parser("info", help="Show the model configuration schema")
    return ap


def handle_info(config_schema: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not config_schema:
        print("No configuration schema defined for this model.")
        return None
    print("Configuration Schema:")
    print(yaml.safe_dump(config_schema, sort_keys=False, default_flow_style=False).rstrip())
    return config_schema


def create_chap_cli(
    train_fn: TrainFn,
    predict_fn: PredictFn,
    config_schema: Optional[Dict[str, Any]] = None,
    args: Optional[List[str]] = None,
    cfg: Optional[Config] = None,
):
    """Expose ``train_fn``/``predict_fn`` as ``train``, ``predict`` and ``info`` subcommands.

    ``train_fn(training_data, model_configuration)`` returns any picklable
    model. ``predict_fn(historic_data, future_data, saved_model,
    model_configuration)`` returns a DataFrame (optionally with a ``samples``
    column) or :class:`~chap_sdk.predictions.NestedPredictions`.

    Returns the saved model path for ``train``, the predictions path for
    ``predict`` and the schema for ``info``. Usage errors exit through
    argparse.
    """
    if not callable(train_fn):
        raise TypeError("train_fn must be a function")
    if not callable(predict_fn):
        raise TypeError("predict_fn must be a function")

    cfg = cfg or Config()
    ap = build_parser(cfg=cfg)
    ns = ap.parse_args(sys.argv[1:] if args is None else list(args))
    if ns.command is None:
        ap.error("a subcommand is required (train, predict or info)")

    logging.basicConfig(level=ns.log_level.upper(), format="%(asctime)s %(levelname)s %(message)s")

    if ns.command == "train":
        return run_train(train_fn, ns.training_data, ns.config, cfg=cfg, model_out=ns.model_out)
    if ns.command == "predict":
        return run_predict(
            predict_fn,
            ns.historic_data,
            ns.future_data,
            ns.model,
            ns.config,
            cfg=cfg,
            output=ns.output,
        )
    return handle_info(config_schema)
