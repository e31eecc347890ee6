# tests/conftest.py
import numpy as np
import pandas as pd
import pytest
from loguru import logger
from sklearn.datasets import load_iris


@pytest.fixture(autouse=True)
def disable_logger():
    logger.remove()
    logger.add(lambda msg: None)
    yield


@pytest.fixture
def log_messages():
    """Collect loguru messages (level INFO and up) emitted during a test."""
    messages = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="INFO")
    yield messages
    logger.remove(handler_id)


@pytest.fixture(scope="session")
def iris_frame() -> pd.DataFrame:
    raw = load_iris(as_frame=True)
    df = raw.frame.rename(
        columns={
            "sepal length (cm)": "sepal_length",
            "sepal width (cm)": "sepal_width",
            "petal length (cm)": "petal_length",
            "petal width (cm)": "petal_width",
        }
    )
    df["Species"] = pd.Categorical.from_codes(df.pop("target"), categories=list(raw.target_names))
    return df.sample(frac=1.0, random_state=1).reset_index(drop=True)


@pytest.fixture
def iris(iris_frame) -> pd.DataFrame:
    return iris_frame.copy()


@pytest.fixture
def ratings() -> pd.DataFrame:
    rng = np.random.default_rng(7)
    n = 400
    return pd.DataFrame(
        {
            "rating": rng.integers(1, 6, n).astype(float),
            "userid": rng.integers(1, 21, n).astype("int64"),
            "itemid": rng.integers(1, 16, n).astype("int64"),
        }
    )


class RecordingLearner:
    """Learner double: records every instance it is trained on."""

    def __init__(self, votes=None):
        self.votes = votes
        self.schema = None
        self.seen = []
        self.resets = 0
        self.prepared = 0

    def reset_learning(self):
        self.resets += 1
        self.seen = []

    def set_model_context(self, schema):
        self.schema = schema

    def prepare_for_use(self):
        self.prepared += 1

    def train_on_instance(self, instance):
        self.seen.append(np.array(instance, copy=True))

    def get_votes_for_instance(self, instance):
        if self.votes is not None:
            return list(self.votes)
        return [1.0] * max(1, len(self.schema.response_levels))

    def training_has_started(self):
        return bool(self.seen)


class StalledStream:
    """Claims to have more rows but never returns any."""

    def __init__(self):
        self.calls = 0

    def is_finished(self):
        return False

    def get_points(self, n):
        self.calls += 1
        return pd.DataFrame({"y": pd.Series([], dtype=float)})


@pytest.fixture
def recording_learner():
    return RecordingLearner


@pytest.fixture
def stalled_stream():
    return StalledStream()


@pytest.fixture
def toy_frame() -> pd.DataFrame:
    rng = np.random.default_rng(3)
    n = 30
    return pd.DataFrame(
        {
            "x": rng.normal(size=n),
            "color": pd.Categorical(rng.choice(["red", "green", "blue"], n), categories=["blue", "green", "red"]),
            "y": pd.Categorical(rng.choice(["no", "yes"], n), categories=["no", "yes"]),
        }
    )
