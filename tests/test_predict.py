import numpy as np
import pandas as pd
import pytest

from streamlearn.datastream import DataFrameStream
from streamlearn.errors import PreconditionViolation, SchemaMismatch
from streamlearn.learners import MatrixFactorizationRecommender, SGDClassifierLearner, SGDRegressorLearner
from streamlearn.models import Classifier, Recommender, Regressor
from streamlearn.predict import predict
from streamlearn.train import train

LEVELS = ["setosa", "versicolor", "virginica"]


@pytest.fixture
def trained_iris(iris):
    model = Classifier(SGDClassifierLearner())
    return train(model, "Species ~ .", DataFrameStream(iris), chunk_size=10, reset=True)


def test_votes_are_rows_by_levels(trained_iris, iris):
    newdata = iris.sample(10, random_state=3)
    votes = predict(trained_iris, newdata, type="votes")
    assert votes.shape == (10, 3)
    assert list(votes.columns) == LEVELS
    assert (votes.sum(axis=1) > 0).all()
    assert votes.index.equals(newdata.index)


def test_response_is_a_known_level(trained_iris, iris):
    newdata = iris.sample(10, random_state=3).drop(columns="Species")
    labels = predict(trained_iris, newdata, type="response")
    assert len(labels) == 10
    assert set(labels) <= set(LEVELS)
    assert list(labels.cat.categories) == LEVELS


def test_response_is_argmax_of_votes(trained_iris, iris):
    votes = predict(trained_iris, iris, type="votes")
    labels = predict(trained_iris, iris, type="response")
    assert (votes.idxmax(axis=1) == labels.astype(str)).all()


def test_unknown_type(trained_iris, iris):
    with pytest.raises(ValueError):
        predict(trained_iris, iris, type="probabilities")


def test_untrained_model_is_rejected(recording_learner, toy_frame, stalled_stream):
    trained = train(Classifier(recording_learner()), "y ~ .", stalled_stream)
    with pytest.raises(PreconditionViolation, match="not trained"):
        predict(trained, toy_frame)


def test_unseen_predictor_level_is_rejected(recording_learner, toy_frame):
    trained = train(Classifier(recording_learner()), "y ~ x + color", DataFrameStream(toy_frame))
    newdata = toy_frame.head(3).copy()
    newdata["color"] = ["red", "purple", "blue"]
    with pytest.raises(SchemaMismatch):
        predict(trained, newdata)


def test_ties_go_to_the_first_level(recording_learner, toy_frame):
    trained = train(Classifier(recording_learner(votes=[0.5, 0.5])), "y ~ x", DataFrameStream(toy_frame))
    labels = predict(trained, toy_frame.head(4))
    assert labels.tolist() == ["no"] * 4


def test_short_vote_vectors_are_padded(recording_learner, toy_frame, log_messages):
    trained = train(Classifier(recording_learner(votes=[0.9])), "y ~ x", DataFrameStream(toy_frame))
    votes = predict(trained, toy_frame.head(5), type="votes")
    assert votes.shape == (5, 2)
    assert list(votes.index) == list(toy_frame.index[:5])
    assert votes["yes"].tolist() == [0.0] * 5
    assert votes["no"].tolist() == [0.9] * 5
    assert len([m for m in log_messages if "padded with zeros" in m]) == 1


def test_prediction_reuses_stored_transform(recording_learner):
    frame = pd.DataFrame({"y": ["a", "b"] * 5, "raw": np.arange(10.0)})

    def with_feature(df):
        df = df.copy()
        df["feat"] = df["raw"] * 2
        return df

    learner = recording_learner()
    trained = train(Classifier(learner), "y ~ feat", DataFrameStream(frame), transform=with_feature)
    assert [x[1] for x in learner.seen] == (frame["raw"] * 2).tolist()
    # newdata has no "feat" column; the stored transform derives it
    labels = predict(trained, frame[["raw"]])
    assert len(labels) == 10


def test_na_fail_is_the_default(trained_iris, iris):
    newdata = iris.head(3).copy()
    newdata.loc[newdata.index[0], "sepal_length"] = np.nan
    with pytest.raises(PreconditionViolation):
        predict(trained_iris, newdata)
    assert len(predict(trained_iris, newdata, na_action="omit")) == 2


def test_regressor_returns_one_value_per_row(iris):
    model = Regressor(SGDRegressorLearner())
    trained = train(model, "petal_length ~ sepal_length + petal_width + Species", DataFrameStream(iris), chunk_size=25)
    newdata = iris.head(10)
    for kind in ("response", "votes"):
        out = predict(trained, newdata, type=kind)
        assert isinstance(out, pd.Series)
        assert len(out) == 10
        assert np.isfinite(out.to_numpy()).all()


def test_recommender_predicts_finite_ratings(ratings):
    learner = MatrixFactorizationRecommender(features=5)
    trained = train(Recommender(learner), "rating ~ userid + itemid", DataFrameStream(ratings), chunk_size=100)
    grid = pd.MultiIndex.from_product(
        [learner.users(), learner.items()], names=["userid", "itemid"]
    ).to_frame(index=False)
    out = predict(trained, grid)
    assert list(out.columns) == ["userid", "itemid", "rating"]
    assert len(out) == len(grid)
    assert np.isfinite(out["rating"].to_numpy()).all()
    assert out["rating"].between(1.0, 5.0).all()


def test_recommender_unknown_user_gets_finite_rating(ratings):
    learner = MatrixFactorizationRecommender()
    trained = train(Recommender(learner), "rating ~ userid + itemid", DataFrameStream(ratings))
    out = predict(trained, pd.DataFrame({"userid": [999], "itemid": [1]}))
    assert np.isfinite(out["rating"].iloc[0])
