import pandas as pd
import pytest

from streamlearn.cli import build_parser, main, read_table
from streamlearn.learners import SGDClassifierLearner


def test_defaults():
    args = build_parser().parse_args(["--data", "x.csv", "--formula", "y ~ ."])
    assert args.chunk_size == 1000
    assert args.reset is True
    assert args.trace is False
    assert args.max_runtime == float("inf")


def test_read_table_rejects_unknown_format(tmp_path):
    with pytest.raises(SystemExit):
        read_table(str(tmp_path / "data.xlsx"))


def test_train_predict_from_parquet(tmp_path, iris):
    data = tmp_path / "iris.parquet"
    iris.to_parquet(data, engine="pyarrow", index=False)
    out = tmp_path / "preds.csv"
    model_out = tmp_path / "models" / "clf.joblib"
    code = main([
        "--data", str(data),
        "--formula", "Species ~ .",
        "--learner", "sgd-classifier",
        "--chunk-size", "10",
        "--trace",
        "--predict", str(data),
        "--type", "votes",
        "--out", str(out),
        "--model-out", str(model_out),
        "--log-level", "WARNING",
    ])
    assert code == 0
    preds = pd.read_csv(out, index_col=0)
    assert preds.shape == (150, 3)
    assert SGDClassifierLearner.load(str(model_out)).training_has_started()


def test_csv_with_categorical_flag(tmp_path, iris):
    data = tmp_path / "iris.csv"
    iris.to_csv(data, index=False)
    out = tmp_path / "labels.csv"
    code = main([
        "--data", str(data),
        "--formula", "Species ~ petal_length + petal_width",
        "--chunk-size", "25",
        "--categorical", "Species",
        "--predict", str(data),
        "--out", str(out),
    ])
    assert code == 0
    labels = pd.read_csv(out, index_col=0)
    assert set(labels["Species"]) <= {"setosa", "versicolor", "virginica"}


def test_schema_errors_exit_nonzero(tmp_path):
    data = tmp_path / "bad.csv"
    pd.DataFrame({"y": ["a", "b", "c", "d"], "x": [1.0, 2.0, 3.0, 4.0]}).to_csv(data, index=False)
    code = main(["--data", str(data), "--formula", "y ~ x", "--chunk-size", "2"])
    assert code == 1
