#!/usr/bin/env python3
"""
Column projection applied to every chunk ("model frame").

A Projection names the response column, the ordered predictor columns, an
optional row subset and the NA policy. It is built once per training call,
resolved against the first chunk and stored on the trained result so that
prediction replays exactly the same selection.

Formulas of the form
  "Species ~ Sepal.Length + Sepal.Width"
  "Species ~ ."            (every other column)
  "Species ~ . - Petal.Width"
are accepted as a shorthand.
"""
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Optional, Tuple, Union

import pandas as pd

from streamlearn.errors import PreconditionViolation, SchemaMismatch

NA_POLICIES = ("omit", "exclude", "fail", "pass")

Subset = Union[str, Callable[[pd.DataFrame], "pd.Series"], None]


@dataclass(frozen=True)
class Projection:
    response: str
    predictors: Optional[Tuple[str, ...]] = None
    exclude: Tuple[str, ...] = ()
    subset: Subset = None
    na_action: str = "omit"

    def __post_init__(self):
        if self.na_action not in NA_POLICIES:
            raise ValueError(f"na_action must be one of {NA_POLICIES}, got {self.na_action!r}")

    @property
    def resolved(self) -> bool:
        return self.predictors is not None

    def resolve(self, columns: Iterable[str]) -> "Projection":
        """Expand "." to the concrete predictor columns of a chunk."""
        if self.resolved:
            return self
        preds = tuple(
            str(c) for c in columns if c != self.response and c not in self.exclude
        )
        return replace(self, predictors=preds)

    @property
    def columns(self) -> Tuple[str, ...]:
        if not self.resolved:
            raise ValueError("projection has not been resolved against a chunk yet")
        return (self.response,) + tuple(self.predictors)

    def describe(self) -> str:
        if not self.resolved:
            rhs = " - ".join(["."] + list(self.exclude))
        else:
            rhs = " + ".join(self.predictors) or "1"
        return f"{self.response} ~ {rhs}"


def parse_formula(formula: str) -> Projection:
    if "~" not in formula:
        raise ValueError(f"formula must look like 'response ~ predictors', got {formula!r}")
    lhs, rhs = formula.split("~", 1)
    response = lhs.strip()
    if not response:
        raise ValueError(f"formula has no response: {formula!r}")

    # split on + / - while keeping the sign of each term
    terms = []
    sign = "+"
    token = ""
    for ch in rhs:
        if ch in "+-":
            if token.strip():
                terms.append((sign, token.strip()))
            sign, token = ch, ""
        else:
            token += ch
    if token.strip():
        terms.append((sign, token.strip()))

    if any(t == "." for _, t in terms):
        exclude = tuple(t for s, t in terms if s == "-")
        return Projection(response=response, predictors=None, exclude=exclude)
    predictors = []
    for s, t in terms:
        if s == "-":
            if t in predictors:
                predictors.remove(t)
        elif t not in predictors:
            predictors.append(t)
    return Projection(response=response, predictors=tuple(predictors))


def as_projection(formula: Union[str, Projection], subset: Subset = None, na_action: Optional[str] = None) -> Projection:
    proj = parse_formula(formula) if isinstance(formula, str) else formula
    changes = {}
    if subset is not None:
        changes["subset"] = subset
    if na_action is not None:
        changes["na_action"] = na_action
    return replace(proj, **changes) if changes else proj


def _subset_mask(frame: pd.DataFrame, subset: Subset) -> pd.Series:
    if isinstance(subset, str):
        mask = frame.eval(subset)
    else:
        mask = subset(frame)
    return pd.Series(mask, index=frame.index).fillna(False).astype(bool)


def model_frame(
    frame: pd.DataFrame,
    projection: Projection,
    drop_response: bool = False,
    na_action: Optional[str] = None,
) -> pd.DataFrame:
    """
    Select the projection's columns (response first) from one chunk, apply
    the row subset and the NA policy. Category dtypes are kept intact, so
    levels unused in this chunk stay declared.
    """
    proj = projection.resolve(frame.columns)
    cols = list(proj.columns[1:] if drop_response else proj.columns)
    missing = [c for c in cols if c not in frame.columns]
    if missing:
        raise SchemaMismatch(f"columns {missing} not found; available: {list(frame.columns)}")

    if proj.subset is not None:
        frame = frame.loc[_subset_mask(frame, proj.subset)]
    out = frame[cols]

    policy = na_action or proj.na_action
    if policy not in NA_POLICIES:
        raise ValueError(f"na_action must be one of {NA_POLICIES}, got {policy!r}")
    if policy in ("omit", "exclude"):
        out = out.dropna()
    elif policy == "fail" and out.isna().to_numpy().any():
        raise PreconditionViolation(f"missing values in columns {out.columns[out.isna().any()].tolist()}")
    return out
