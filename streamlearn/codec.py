#!/usr/bin/env python3
"""
Instance codec: tabular rows <-> fixed-width float vectors.

An instance has one slot per schema attribute, in schema order:
  - numeric values pass through as float
  - categorical values become their zero-based position in the bound levels,
    so the level with one-based ordinal k is stored as k-1
  - missing values, and the response slot when predicting, are NaN

Vote vectors coming back from a learner are mapped onto the response levels
positionally. Some learners return fewer votes than there are levels (classes
never seen during training); those vectors are zero-padded, not rejected.
"""
from typing import Any, Iterable, Mapping, Sequence

import numpy as np
import pandas as pd
from loguru import logger

from streamlearn.errors import SchemaMismatch
from streamlearn.schema import Attribute, Schema


def _is_missing(value: Any) -> bool:
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _encode_value(attr: Attribute, value: Any, positions: Mapping[Any, int]) -> float:
    if _is_missing(value):
        return np.nan
    if attr.is_categorical:
        pos = positions.get(value)
        if pos is None:
            raise SchemaMismatch(
                f"value {value!r} of {attr.name!r} is not one of the bound levels {list(attr.levels)}"
            )
        return float(pos)
    return float(value)


def encode(row: Mapping[str, Any], schema: Schema) -> np.ndarray:
    """
    Encode one row (dict or pandas.Series) against a bound schema.
    A missing response column yields the NaN placeholder.
    """
    index = schema.level_index()
    out = np.empty(len(schema.attributes), dtype=float)
    for k, attr in enumerate(schema.attributes):
        if attr.name not in row:
            if attr.name == schema.response:
                out[k] = np.nan
                continue
            raise SchemaMismatch(f"row has no column {attr.name!r}")
        out[k] = _encode_value(attr, row[attr.name], index.get(attr.name, {}))
    return out


def _encode_column(attr: Attribute, col: pd.Series) -> np.ndarray:
    if not attr.is_categorical:
        try:
            return pd.to_numeric(col, errors="raise").to_numpy(dtype=float, na_value=np.nan)
        except (TypeError, ValueError) as e:
            raise SchemaMismatch(f"column {attr.name!r} is not numeric: {e}") from e
    present = col.notna()
    unknown = present & ~col.isin(list(attr.levels))
    if unknown.any():
        bad = pd.unique(col[unknown].astype(object))
        raise SchemaMismatch(
            f"values {list(bad)!r} of {attr.name!r} are not in the bound levels {list(attr.levels)}"
        )
    # every non-missing value is a bound level here; missing ones map to NaN
    positions = {lvl: float(pos) for pos, lvl in enumerate(attr.levels)}
    return col.astype(object).map(positions).to_numpy(dtype=float, na_value=np.nan)


def encode_frame(frame: pd.DataFrame, schema: Schema) -> np.ndarray:
    """
    Encode a whole chunk, column by column. Returns an (n_rows, n_attributes)
    float array; row j is the instance for frame.iloc[j].
    """
    out = np.empty((len(frame), len(schema.attributes)), dtype=float)
    for k, attr in enumerate(schema.attributes):
        if attr.name not in frame.columns:
            if attr.name == schema.response:
                out[:, k] = np.nan
                continue
            raise SchemaMismatch(f"chunk has no column {attr.name!r}; expected {list(schema.names)}")
        out[:, k] = _encode_column(attr, frame[attr.name])
    return out


def pad_votes(votes: Sequence[float], n_levels: int) -> np.ndarray:
    v = np.asarray(votes, dtype=float).ravel()
    if len(v) >= n_levels:
        return v[:n_levels]
    return np.concatenate([v, np.zeros(n_levels - len(v))])


def decode_vote_matrix(votes_per_row: Iterable[Sequence[float]], schema: Schema, index=None) -> pd.DataFrame:
    """
    Label one vote vector per row with the response levels (rows x levels).
    For a numeric response there is a single column named after the response.
    Short vectors are zero-padded and reported once per call.
    """
    attr = schema.response_attribute
    labels = list(attr.levels) if attr.is_categorical else [attr.name]
    rows = [np.asarray(v, dtype=float).ravel() for v in votes_per_row]
    scores = np.zeros((len(rows), len(labels)), dtype=float)
    short = 0
    for j, v in enumerate(rows):
        if len(v) < len(labels):
            short += 1
        scores[j, :] = pad_votes(v, len(labels))
    if short:
        logger.warning(
            "{} of {} vote vectors were shorter than the {} response levels; padded with zeros",
            short,
            len(rows),
            len(labels),
        )
    return pd.DataFrame(scores, index=index, columns=labels)


def decode_votes(votes: Sequence[float], schema: Schema) -> pd.Series:
    """
    Label a vote vector with the response levels. For a numeric response the
    single estimate is returned under the response name.
    """
    return decode_vote_matrix([votes], schema).iloc[0].rename(None)
