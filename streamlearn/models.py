#!/usr/bin/env python3
"""
Role-tagged model handles.

A Model wraps an external incremental learner and tracks whether a schema has
been bound to it:

  Unbound --bind(schema)--> Bound --reset()--> Unbound

Classifier and Regressor learners must provide
  reset_learning(), set_model_context(schema), prepare_for_use(),
  train_on_instance(x), get_votes_for_instance(x), training_has_started()

Recommender learners must provide
  prepare_for_use(), set_rating(user, item, rating),
  predict_rating(user, item), training_has_started()

The caller owns the model; one training run at a time per model.
"""
from enum import Enum
from typing import Any, Dict, Optional

from streamlearn.errors import SchemaMismatch
from streamlearn.schema import Schema, describe


class Role(str, Enum):
    CLASSIFIER = "classifier"
    REGRESSOR = "regressor"
    RECOMMENDER = "recommender"


class Model:
    role: Role

    def __init__(self, learner: Any):
        self.learner = learner
        self.schema: Optional[Schema] = None

    @property
    def is_bound(self) -> bool:
        return self.schema is not None

    def reset(self) -> None:
        """Forget everything learned and drop the bound schema."""
        self.learner.reset_learning()
        self.schema = None

    def bind(self, schema: Schema) -> None:
        if self.schema is not None:
            if self.schema == schema:
                return
            raise SchemaMismatch(
                f"model is already bound to {list(self.schema.names)}; "
                f"refusing to rebind to {list(schema.names)} (train with reset=True)"
            )
        self.learner.set_model_context(schema)
        self.learner.prepare_for_use()
        self.schema = schema

    def training_started(self) -> bool:
        return bool(self.learner.training_has_started())

    def summary(self) -> Dict[str, Any]:
        out = {"role": self.role.value, "learner": type(self.learner).__name__}
        out.update(describe(self.schema))
        out["training_started"] = self.training_started()
        return out

    def __repr__(self) -> str:
        state = "bound" if self.is_bound else "unbound"
        return f"{type(self).__name__}({type(self.learner).__name__}, {state})"


class Classifier(Model):
    role = Role.CLASSIFIER


class Regressor(Model):
    role = Role.REGRESSOR


class Recommender(Model):
    """Recommenders are never bound to a schema; prepare() is idempotent."""

    role = Role.RECOMMENDER

    def bind(self, schema: Schema) -> None:
        raise TypeError("recommenders are trained on (user, item, rating) triples and take no schema")

    def prepare(self) -> None:
        self.learner.prepare_for_use()
