#!/usr/bin/env python3
"""
Streaming / incremental trainer.

train() pulls chunks from a data stream and feeds every row, in order, into
the model's single-instance update:

  - classifiers / regressors: the first chunk with rows left after projection
    fixes the schema (attributes, levels, response) and prepares the learner;
    each row is then encoded into an instance and passed to
    learner.train_on_instance()
  - recommenders: no schema; each (rating, user, item) row is passed to
    learner.set_rating(user, item, rating)

The loop ends when the stream is finished, when it stalls (not finished but
no rows), or when max_runtime seconds have passed at a chunk boundary. A
failing chunk leaves the model with the rows it already learned.

Example:
  stream = DataFrameStream(iris)
  trained = train(Classifier(SGDClassifierLearner()), "Species ~ .", stream, chunk_size=10)
"""
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Callable, Dict, Optional, Union
import math

import pandas as pd
from pandas.api import types as ptypes
from loguru import logger

from streamlearn.chunks import ChunkIterator, StopReason, identity
from streamlearn.codec import encode_frame
from streamlearn.datastream import DataStream
from streamlearn.errors import PreconditionViolation
from streamlearn.models import Model, Role
from streamlearn.projection import Projection, Subset, as_projection
from streamlearn.schema import bind_schema


@dataclass(frozen=True)
class TrainedModel:
    """
    Result of one train() call. Carries everything predict() needs to replay
    the row projection: terms, na_action and transform.
    """
    model: Model
    terms: Projection
    na_action: str
    transform: Callable[[pd.DataFrame], pd.DataFrame]
    call: Dict[str, Any] = field(default_factory=dict)
    n_chunks: int = 0
    n_rows: int = 0
    stop_reason: Optional[StopReason] = None

    @property
    def role(self) -> Role:
        return self.model.role


def _train_instances(model: Model, chunks: ChunkIterator, reset: bool, budget) -> int:
    if reset:
        model.reset()
    n_rows = 0
    bound = False
    for i, _, frame in chunks:
        if len(frame):
            if not bound:
                # levels are read from the first chunk that still has rows after projection
                bind_schema(model, frame, chunks.projection.response)
                bound = True
            instances = encode_frame(frame, model.schema)
            for x in instances:
                model.learner.train_on_instance(x)
            n_rows += len(instances)
        else:
            logger.debug("chunk {} has no rows left after projection", i)
        if budget(i):
            break
    return n_rows


def _check_ratings(frame: pd.DataFrame):
    rating, user, item = frame.columns[:3]
    if not ptypes.is_numeric_dtype(frame[rating]) or ptypes.is_bool_dtype(frame[rating]):
        raise PreconditionViolation(f"rating column {rating!r} must be numeric, got {frame[rating].dtype}")
    for col in (user, item):
        if not ptypes.is_integer_dtype(frame[col]):
            raise PreconditionViolation(f"id column {col!r} must be integer, got {frame[col].dtype}")


def _train_ratings(model: Model, chunks: ChunkIterator, reset: bool, budget) -> int:
    if len(chunks.projection.predictors or ()) not in (0, 2):
        raise PreconditionViolation("recommender formula must be 'rating ~ userid + itemid'")
    if reset:
        logger.debug("recommenders have no reset step; keeping stored ratings")
    model.prepare()
    n_rows = 0
    for i, _, frame in chunks:
        if frame.shape[1] != 3:
            raise PreconditionViolation(
                f"recommender formula must select rating, user and item columns, got {list(frame.columns)}"
            )
        _check_ratings(frame)
        set_rating = model.learner.set_rating
        for rating, user, item in frame.itertuples(index=False, name=None):
            set_rating(int(user), int(item), float(rating))
        n_rows += len(frame)
        if budget(i):
            break
    return n_rows


_STRATEGIES = {
    Role.CLASSIFIER: _train_instances,
    Role.REGRESSOR: _train_instances,
    Role.RECOMMENDER: _train_ratings,
}


def train(
    model: Model,
    formula: Union[str, Projection],
    stream: DataStream,
    subset: Subset = None,
    na_action: str = "omit",
    transform: Optional[Callable[[pd.DataFrame], pd.DataFrame]] = None,
    chunk_size: int = 1000,
    reset: bool = True,
    trace: bool = False,
    max_runtime: float = math.inf,
) -> TrainedModel:
    """
    Train model on stream, chunk_size rows at a time.

    formula      "y ~ a + b", "y ~ ." or a Projection
    subset       DataFrame.eval expression or callable returning a row mask
    na_action    omit | exclude | fail | pass
    transform    applied to each raw chunk before projection
    reset        forget earlier training first (no-op for recommenders)
    trace        log every chunk at INFO
    max_runtime  seconds; checked after each chunk only
    """
    start = perf_counter()
    projection = as_projection(formula, subset=subset, na_action=na_action)
    transform = transform or identity
    call = {
        "model": repr(model),
        "formula": formula if isinstance(formula, str) else projection.describe(),
        "chunk_size": chunk_size,
        "reset": reset,
        "na_action": na_action,
        "max_runtime": max_runtime,
    }

    chunks = ChunkIterator(stream, chunk_size, projection, transform=transform, trace=trace)

    def budget(i: int) -> bool:
        elapsed = perf_counter() - start
        if elapsed >= max_runtime:
            logger.info("max_runtime {}s reached after chunk {} ({:.3f}s elapsed)", max_runtime, i, elapsed)
            chunks.stop(StopReason.BUDGET)
            return True
        return False

    strategy = _STRATEGIES[model.role]
    n_rows = strategy(model, chunks, reset, budget)

    logger.info(
        "trained {} on {} rows in {} chunks ({}, {:.3f}s)",
        model.role.value,
        n_rows,
        chunks.index,
        chunks.stop_reason.value if chunks.stop_reason else "stopped",
        perf_counter() - start,
    )
    return TrainedModel(
        model=model,
        terms=chunks.projection,
        na_action=projection.na_action,
        transform=transform,
        call=call,
        n_chunks=chunks.index,
        n_rows=n_rows,
        stop_reason=chunks.stop_reason,
    )
