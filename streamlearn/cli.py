#!/usr/bin/env python3
"""
Train a streaming model on a table file, optionally predict on another one.

The training file is served as a stream of --chunk-size rows; every row is
fed to the learner one at a time.

Usage:
  streamlearn --data dataset/iris.parquet --formula "Species ~ ." --learner sgd-classifier --chunk-size 10 --trace
  streamlearn --data dataset/train.csv --formula "y ~ x1 + x2" --learner sgd-regressor --predict dataset/test.csv --out preds.csv
  streamlearn --data dataset/ratings.parquet --formula "rating ~ userid + itemid" --learner mf-recommender --model-out models/mf.joblib
"""
import argparse
import os
import sys

import pandas as pd
from loguru import logger

from streamlearn.datastream import DataFrameStream
from streamlearn.errors import StreamLearnError
from streamlearn.learners import MatrixFactorizationRecommender, SGDClassifierLearner, SGDRegressorLearner
from streamlearn.log import setup_logging
from streamlearn.models import Classifier, Recommender, Regressor
from streamlearn.predict import predict
from streamlearn.train import train

LEARNERS = {
    "sgd-classifier": lambda: Classifier(SGDClassifierLearner()),
    "sgd-regressor": lambda: Regressor(SGDRegressorLearner()),
    "mf-recommender": lambda: Recommender(MatrixFactorizationRecommender()),
}


def read_table(path: str) -> pd.DataFrame:
    ext = os.path.splitext(path)[1].lower()
    if ext == ".parquet":
        return pd.read_parquet(path, engine="pyarrow")
    if ext in (".csv", ".txt"):
        return pd.read_csv(path)
    raise SystemExit(f"unsupported input format: {path} (expected .parquet or .csv)")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="streamlearn", description="chunked incremental training")
    p.add_argument("--data", required=True, help="training table (.parquet or .csv)")
    p.add_argument("--formula", required=True, help="e.g. 'Species ~ .' or 'rating ~ userid + itemid'")
    p.add_argument("--learner", choices=sorted(LEARNERS), default="sgd-classifier")
    p.add_argument("--chunk-size", type=int, default=1000)
    p.add_argument("--no-reset", dest="reset", action="store_false", help="continue from the learner's current state")
    p.add_argument("--trace", action="store_true", help="log every chunk")
    p.add_argument("--max-runtime", type=float, default=float("inf"), help="seconds, checked between chunks")
    p.add_argument("--na-action", default="omit", choices=["omit", "exclude", "fail", "pass"])
    p.add_argument("--subset", default=None, help="row filter, DataFrame.eval expression")
    p.add_argument("--categorical", nargs="*", default=[], help="columns to read as categorical")
    p.add_argument("--predict", dest="predict_path", default=None, help="table to predict on")
    p.add_argument("--type", dest="pred_type", default="response", choices=["response", "votes"])
    p.add_argument("--out", default=None, help="CSV file for predictions")
    p.add_argument("--model-out", default=None, help="save the trained learner with joblib")
    p.add_argument("--log-level", default="INFO")
    p.add_argument("--log-dir", default=None)
    return p


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_dir)

    def categorise(df: pd.DataFrame) -> pd.DataFrame:
        for col in args.categorical:
            if col in df.columns:
                df[col] = df[col].astype("category")
        return df

    data = categorise(read_table(args.data))
    logger.info("loaded {} rows x {} columns from {}", len(data), data.shape[1], args.data)
    model = LEARNERS[args.learner]()

    try:
        trained = train(
            model,
            args.formula,
            DataFrameStream(data),
            subset=args.subset,
            na_action=args.na_action,
            chunk_size=args.chunk_size,
            reset=args.reset,
            trace=args.trace,
            max_runtime=args.max_runtime,
        )
        logger.info("model: {}", model.summary())
        if args.model_out:
            os.makedirs(os.path.dirname(args.model_out) or ".", exist_ok=True)
            model.learner.save(args.model_out)
            logger.info("saved learner to {}", args.model_out)

        if args.predict_path:
            newdata = categorise(read_table(args.predict_path))
            preds = predict(trained, newdata, type=args.pred_type)
            if args.out:
                preds.to_csv(args.out)
                logger.info("wrote {} predictions to {}", len(preds), args.out)
            else:
                print(preds.to_string())
    except StreamLearnError as e:
        logger.error("{}: {}", type(e).__name__, e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
