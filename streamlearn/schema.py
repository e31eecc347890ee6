#!/usr/bin/env python3
"""
Attribute schema derived from the first non-empty chunk of a training run.

A Schema is the ordered list of attributes a model was bound to:
  - numeric attributes pass through as floats
  - categorical attributes carry the full ordered level tuple seen in chunk 1

Kinds come from pandas dtypes:
  CategoricalDtype          -> categorical, declared categories (unused kept)
  object / string / bool    -> categorical, sorted observed values
  integer / float           -> numeric
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import pandas as pd
from pandas.api import types as ptypes
from loguru import logger

from streamlearn.errors import PreconditionViolation, SchemaMismatch

NUMERIC = "numeric"
CATEGORICAL = "categorical"


@dataclass(frozen=True)
class Attribute:
    name: str
    kind: str
    levels: Tuple[Any, ...] = ()

    @property
    def is_categorical(self) -> bool:
        return self.kind == CATEGORICAL


@dataclass(frozen=True)
class Schema:
    attributes: Tuple[Attribute, ...]
    response: str

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(a.name for a in self.attributes)

    @property
    def response_index(self) -> int:
        return self.names.index(self.response)

    @property
    def response_attribute(self) -> Attribute:
        return self.attributes[self.response_index]

    @property
    def response_levels(self) -> Tuple[Any, ...]:
        return self.response_attribute.levels

    def attribute(self, name: str) -> Attribute:
        for a in self.attributes:
            if a.name == name:
                return a
        raise KeyError(name)

    def level_index(self) -> Dict[str, Dict[Any, int]]:
        """Map categorical attribute name -> {level: zero-based position}."""
        return {
            a.name: {lvl: pos for pos, lvl in enumerate(a.levels)}
            for a in self.attributes
            if a.is_categorical
        }


def _attribute_for(name: str, col: pd.Series) -> Attribute:
    dtype = col.dtype
    if isinstance(dtype, pd.CategoricalDtype):
        return Attribute(name, CATEGORICAL, tuple(dtype.categories))
    if ptypes.is_bool_dtype(dtype) or ptypes.is_object_dtype(dtype) or ptypes.is_string_dtype(dtype):
        observed = col.dropna().unique().tolist()
        try:
            levels = tuple(sorted(observed))
        except TypeError:
            # mixed types: keep first-seen order
            levels = tuple(observed)
        return Attribute(name, CATEGORICAL, levels)
    if ptypes.is_numeric_dtype(dtype):
        return Attribute(name, NUMERIC)
    raise PreconditionViolation(f"column {name!r} has unsupported dtype {dtype}")


def derive_schema(frame: pd.DataFrame, response: str) -> Schema:
    """
    Build a Schema from a projected chunk. Column order is kept as is
    (model_frame puts the response first).
    """
    if response not in frame.columns:
        raise SchemaMismatch(f"response column {response!r} not in chunk columns {list(frame.columns)}")
    attrs = tuple(_attribute_for(str(c), frame[c]) for c in frame.columns)
    return Schema(attributes=attrs, response=response)


def bind_schema(model, first_chunk: pd.DataFrame, response: str) -> Schema:
    """
    Derive the schema from the first chunk and install it on the model
    (set_model_context + prepare_for_use). Mutates model in place.
    """
    schema = derive_schema(first_chunk, response)
    model.bind(schema)
    logger.debug(
        "bound schema: response={} attributes={}",
        schema.response,
        [(a.name, a.kind, len(a.levels)) for a in schema.attributes],
    )
    return schema


def describe(schema: Optional[Schema]) -> Dict[str, Any]:
    """Summary of a bound schema, similar to what a learner header shows."""
    if schema is None:
        return {"bound": False}
    return {
        "bound": True,
        "response": schema.response,
        "response_levels": list(schema.response_levels),
        "attribute_names": list(schema.names),
    }
