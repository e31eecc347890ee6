#!/usr/bin/env python3
"""
Predict with a trained streaming model on new rows.

Rows are projected with the trained terms (response dropped) after applying
the transform, so new data must have the same columns and levels as the
training stream.

  classifier   type="response" -> Series of levels (argmax of votes)
               type="votes"    -> DataFrame rows x levels
  regressor    Series of estimates, whatever the type
  recommender  the projected rows with the predicted rating appended
"""
from typing import Callable, Optional, Union

import numpy as np
import pandas as pd

from streamlearn.codec import decode_vote_matrix, encode_frame
from streamlearn.errors import PreconditionViolation
from streamlearn.models import Role
from streamlearn.projection import model_frame
from streamlearn.train import TrainedModel

PREDICTION_TYPES = ("response", "votes")


def _predict_ratings(trained: TrainedModel, rows: pd.DataFrame, na_action: str) -> pd.DataFrame:
    terms = trained.terms
    frame = model_frame(rows, terms, drop_response=True, na_action=na_action).copy()
    user, item = frame.columns[:2]
    predict_rating = trained.model.learner.predict_rating
    frame[terms.response] = [
        float(predict_rating(int(u), int(i))) for u, i in zip(frame[user], frame[item])
    ]
    return frame


def _votes_matrix(trained: TrainedModel, rows: pd.DataFrame, na_action: str) -> pd.DataFrame:
    model = trained.model
    if not model.training_started():
        raise PreconditionViolation("Model is not trained yet")
    schema = model.schema
    if schema is None:
        raise PreconditionViolation("model has no bound schema; train it first")

    frame = model_frame(rows, trained.terms, drop_response=True, na_action=na_action).copy()
    frame[schema.response] = np.nan
    instances = encode_frame(frame, schema)
    get_votes = model.learner.get_votes_for_instance
    return decode_vote_matrix([get_votes(x) for x in instances], schema, index=frame.index)


def predict(
    trained: TrainedModel,
    new_rows: pd.DataFrame,
    type: str = "response",
    transform: Optional[Callable[[pd.DataFrame], pd.DataFrame]] = None,
    na_action: str = "fail",
) -> Union[pd.Series, pd.DataFrame]:
    if type not in PREDICTION_TYPES:
        raise ValueError(f"type must be one of {PREDICTION_TYPES}, got {type!r}")
    transform = transform or trained.transform
    rows = transform(new_rows)

    if trained.role is Role.RECOMMENDER:
        return _predict_ratings(trained, rows, na_action)

    votes = _votes_matrix(trained, rows, na_action)
    schema = trained.model.schema
    if trained.role is Role.REGRESSOR:
        return votes.iloc[:, 0].rename(schema.response)

    if type == "votes":
        return votes
    # np.argmax returns the first maximum, so ties go to the earlier level
    best = votes.to_numpy().argmax(axis=1)
    labels = pd.Categorical.from_codes(best, categories=list(schema.response_levels))
    return pd.Series(labels, index=votes.index, name=schema.response)
