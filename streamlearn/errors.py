#!/usr/bin/env python3
"""
Exceptions raised by the streaming trainer.

Stream exhaustion, stream stalls and the time budget are not errors; they end
the training loop normally and are recorded as a StopReason (see chunks.py).
"""


class StreamLearnError(Exception):
    """Base class for streamlearn errors."""


class SchemaMismatch(StreamLearnError):
    """
    A row does not conform to the schema bound from the first chunk:
    a column is missing, or a categorical value is outside the bound levels.
    """


class PreconditionViolation(StreamLearnError):
    """
    A call was made in a state or with data it cannot accept, e.g. predicting
    with an untrained model or training a recommender on non-integer ids.
    """
