#!/usr/bin/env python3
"""
Incremental learners usable behind Classifier / Regressor / Recommender.

This module provides:
 - SGDClassifierLearner: scikit-learn SGDClassifier, one partial_fit per instance
 - SGDRegressorLearner: scikit-learn SGDRegressor, one partial_fit per instance
 - MatrixFactorizationRecommender: dictionary-backed biased matrix
   factorisation with its own rating store, one SGD step per set_rating

The sklearn learners expand an encoded instance into a feature vector using
the bound schema: numeric attributes take one slot, categorical attributes
are one-hot encoded over their levels, the response slot is dropped. Features
are standardised with a StandardScaler updated by partial_fit.

All learners can be saved and loaded with joblib.
"""
from typing import Dict, List, Optional, Tuple
import math

import joblib
import numpy as np
from sklearn.linear_model import SGDClassifier, SGDRegressor
from sklearn.preprocessing import StandardScaler
from loguru import logger

from streamlearn.errors import PreconditionViolation


class _SGDLearner:
    def __init__(self, standardize: bool = True, **sgd_params):
        self.standardize = bool(standardize)
        self.sgd_params = dict(sgd_params)
        self.schema = None
        self.prepared = False
        self.n_seen = 0
        self.estimator = None
        self.scaler = None
        # (slot, attribute position, n_levels or 0 for numeric)
        self._layout: List[Tuple[int, int, int]] = []
        self._width = 0

    def _make_estimator(self):
        raise NotImplementedError

    def reset_learning(self):
        self.estimator = self._make_estimator()
        self.scaler = StandardScaler() if self.standardize else None
        self.n_seen = 0

    def set_model_context(self, schema):
        self.schema = schema
        layout = []
        slot = 0
        for pos, attr in enumerate(schema.attributes):
            if attr.name == schema.response:
                continue
            width = len(attr.levels) if attr.is_categorical else 0
            layout.append((slot, pos, width))
            slot += max(1, width)
        self._layout = layout
        self._width = slot

    def prepare_for_use(self):
        if self.schema is None:
            raise PreconditionViolation("set_model_context must be called before prepare_for_use")
        if self.estimator is None:
            self.reset_learning()
        self.prepared = True

    def training_has_started(self) -> bool:
        return self.n_seen > 0

    def features(self, instance: np.ndarray) -> np.ndarray:
        """Expand one encoded instance into a 1 x n feature row."""
        x = np.zeros((1, self._width), dtype=float)
        for slot, pos, width in self._layout:
            v = instance[pos]
            if np.isnan(v):
                continue
            if width:
                x[0, slot + int(v)] = 1.0
            else:
                x[0, slot] = v
        return x

    def _scaled(self, instance: np.ndarray, update: bool) -> np.ndarray:
        x = self.features(instance)
        if self.scaler is None:
            return x
        if update:
            self.scaler.partial_fit(x)
        return self.scaler.transform(x)

    def _target(self, instance: np.ndarray) -> Optional[float]:
        y = instance[self.schema.response_index]
        return None if np.isnan(y) else float(y)

    def train_on_instance(self, instance: np.ndarray):
        if not self.prepared:
            raise PreconditionViolation("learner is not prepared for use")
        y = self._target(instance)
        if y is None:
            logger.debug("skipping instance without a response value")
            return
        self._fit_one(self._scaled(instance, update=True), y)
        self.n_seen += 1

    def get_votes_for_instance(self, instance: np.ndarray) -> np.ndarray:
        if not self.training_has_started():
            raise PreconditionViolation("learner has not been trained")
        return self._votes(self._scaled(instance, update=False))

    def save(self, path: str):
        joblib.dump({"learner": self, "format_version": 1}, path)

    @classmethod
    def load(cls, path: str):
        raw = joblib.load(path)
        obj = raw.get("learner") if isinstance(raw, dict) and "learner" in raw else raw
        if not isinstance(obj, cls):
            raise TypeError(f"{path} holds a {type(obj).__name__}, not a {cls.__name__}")
        return obj


class SGDClassifierLearner(_SGDLearner):
    """
    Logistic-loss SGD classifier. Classes are the zero-based response level
    positions, declared on the first partial_fit so every vote vector has one
    probability per level.
    """

    def _make_estimator(self):
        params = {"loss": "log_loss", "random_state": 42}
        params.update(self.sgd_params)
        return SGDClassifier(**params)

    def _fit_one(self, x: np.ndarray, y: float):
        if self.n_seen == 0:
            classes = np.arange(len(self.schema.response_levels))
            self.estimator.partial_fit(x, [int(y)], classes=classes)
        else:
            self.estimator.partial_fit(x, [int(y)])

    def _votes(self, x: np.ndarray) -> np.ndarray:
        if self.estimator.loss in ("log_loss", "modified_huber"):
            return self.estimator.predict_proba(x)[0]
        # hinge & co: shift decision scores so the best class gets the largest positive vote
        scores = np.atleast_1d(self.estimator.decision_function(x)[0])
        if scores.size == 1:
            # binary: one signed score for the second level
            scores = np.array([-scores[0], scores[0]])
        return scores - scores.min() + 1e-12


class SGDRegressorLearner(_SGDLearner):
    """Squared-loss SGD regressor; votes are a length-1 estimate."""

    def _make_estimator(self):
        params = {"penalty": "l2", "random_state": 42}
        params.update(self.sgd_params)
        return SGDRegressor(**params)

    def _fit_one(self, x: np.ndarray, y: float):
        self.estimator.partial_fit(x, [y])

    def _votes(self, x: np.ndarray) -> np.ndarray:
        return np.asarray(self.estimator.predict(x), dtype=float)[:1]


class MatrixFactorizationRecommender:
    """
    Biased matrix factorisation trained online, one rating at a time.

      r_hat(u, i) = mu + b_u + b_i + p_u . q_i

    Update rule for a rating r on (u, i) with error e = r - r_hat and
    learning rate eta:
      b_u <- b_u + eta * (e - l2 * b_u)
      b_i <- b_i + eta * (e - l2 * b_i)
      p_u <- p_u + eta * (e * q_i - l2 * p_u)
      q_i <- q_i + eta * (e * p_u - l2 * q_i)
    mu is the mean of the rating store. With decay=True eta follows
    eta0 / sqrt(iterations).

    Unknown users or items fall back to the biases that are known, so every
    prediction is a finite number. Predictions are clipped to the range of
    ratings seen so far.
    """

    def __init__(self, features: int = 10, eta0: float = 0.01, l2: float = 0.02,
                 init_std: float = 0.1, decay: bool = False, seed: int = 42):
        self.features = int(features)
        self.eta0 = float(eta0)
        self.l2 = float(l2)
        self.init_std = float(init_std)
        self.decay = bool(decay)
        self.seed = seed
        self.reset_learning()

    def reset_learning(self):
        self.ratings: Dict[Tuple[int, int], float] = {}
        self.user_bias: Dict[int, float] = {}
        self.item_bias: Dict[int, float] = {}
        self.user_factors: Dict[int, np.ndarray] = {}
        self.item_factors: Dict[int, np.ndarray] = {}
        self.rating_sum = 0.0
        self.rating_min = math.inf
        self.rating_max = -math.inf
        self.iterations = 0
        self._rng = None

    def prepare_for_use(self):
        if self._rng is None:
            self._rng = np.random.default_rng(self.seed)

    def training_has_started(self) -> bool:
        return bool(self.ratings)

    @property
    def global_mean(self) -> float:
        return self.rating_sum / len(self.ratings) if self.ratings else 0.0

    def _factor(self, store: Dict[int, np.ndarray], key: int) -> np.ndarray:
        f = store.get(key)
        if f is None:
            f = self._rng.normal(0.0, self.init_std, self.features)
            store[key] = f
        return f

    def _estimate(self, user: int, item: int) -> float:
        s = self.global_mean + self.user_bias.get(user, 0.0) + self.item_bias.get(item, 0.0)
        p = self.user_factors.get(user)
        q = self.item_factors.get(item)
        if p is not None and q is not None:
            s += float(p @ q)
        return s

    def set_rating(self, user: int, item: int, rating: float):
        if self._rng is None:
            raise PreconditionViolation("recommender is not prepared for use")
        user, item, rating = int(user), int(item), float(rating)
        if not math.isfinite(rating):
            raise PreconditionViolation(f"rating for ({user}, {item}) is not finite: {rating}")
        old = self.ratings.get((user, item))
        if old is not None:
            self.rating_sum -= old
        self.ratings[(user, item)] = rating
        self.rating_sum += rating
        self.rating_min = min(self.rating_min, rating)
        self.rating_max = max(self.rating_max, rating)

        p = self._factor(self.user_factors, user)
        q = self._factor(self.item_factors, item)
        error = rating - self._estimate(user, item)

        self.iterations += 1
        eta = self.eta0 / math.sqrt(max(1, self.iterations)) if self.decay else self.eta0

        bu = self.user_bias.get(user, 0.0)
        bi = self.item_bias.get(item, 0.0)
        self.user_bias[user] = bu + eta * (error - self.l2 * bu)
        self.item_bias[item] = bi + eta * (error - self.l2 * bi)
        p_old = p.copy()
        p += eta * (error * q - self.l2 * p)
        q += eta * (error * p_old - self.l2 * q)

    def get_rating(self, user: int, item: int) -> Optional[float]:
        return self.ratings.get((int(user), int(item)))

    def predict_rating(self, user: int, item: int) -> float:
        est = self._estimate(int(user), int(item))
        if self.ratings:
            est = min(max(est, self.rating_min), self.rating_max)
        return float(est)

    def users(self) -> List[int]:
        return sorted({u for u, _ in self.ratings})

    def items(self) -> List[int]:
        return sorted({i for _, i in self.ratings})

    def to_dict(self) -> Dict:
        return {
            "features": self.features,
            "eta0": self.eta0,
            "l2": self.l2,
            "init_std": self.init_std,
            "decay": self.decay,
            "seed": self.seed,
            "ratings": dict(self.ratings),
            "user_bias": dict(self.user_bias),
            "item_bias": dict(self.item_bias),
            "user_factors": {k: v.tolist() for k, v in self.user_factors.items()},
            "item_factors": {k: v.tolist() for k, v in self.item_factors.items()},
            "iterations": self.iterations,
            "rating_range": [self.rating_min, self.rating_max],
        }

    @classmethod
    def from_dict(cls, d: Dict):
        m = cls(features=d.get("features", 10), eta0=d.get("eta0", 0.01), l2=d.get("l2", 0.02),
                init_std=d.get("init_std", 0.1), decay=d.get("decay", False), seed=d.get("seed", 42))
        m.ratings = dict(d.get("ratings", {}))
        m.rating_sum = float(sum(m.ratings.values()))
        if m.ratings:
            lo, hi = d.get("rating_range") or (min(m.ratings.values()), max(m.ratings.values()))
            m.rating_min, m.rating_max = float(lo), float(hi)
        m.user_bias = dict(d.get("user_bias", {}))
        m.item_bias = dict(d.get("item_bias", {}))
        m.user_factors = {k: np.asarray(v, dtype=float) for k, v in d.get("user_factors", {}).items()}
        m.item_factors = {k: np.asarray(v, dtype=float) for k, v in d.get("item_factors", {}).items()}
        m.iterations = int(d.get("iterations", 0))
        return m

    def save(self, path: str):
        joblib.dump({"model": self.to_dict(), "format_version": 1}, path)

    @classmethod
    def load(cls, path: str):
        raw = joblib.load(path)
        d = raw.get("model") if isinstance(raw, dict) and "model" in raw else raw
        m = cls.from_dict(d)
        m.prepare_for_use()
        return m
