#!/usr/bin/env python3
"""
Data stream interface consumed by the training loop.

Any object with
  is_finished() -> bool
  get_points(n) -> pandas.DataFrame | None
can be trained on. DataFrameStream serves an in-memory frame in order.
"""
from typing import Optional, Protocol, runtime_checkable

import pandas as pd


@runtime_checkable
class DataStream(Protocol):
    def is_finished(self) -> bool:
        ...

    def get_points(self, n: int) -> Optional[pd.DataFrame]:
        ...


class DataFrameStream:
    """
    Stream over a DataFrame. Rows are returned in order, at most n per call;
    is_finished() turns true once every row has been handed out.
    """

    def __init__(self, data: pd.DataFrame):
        self.data = data
        self.position = 0

    def __len__(self) -> int:
        return len(self.data)

    def is_finished(self) -> bool:
        return self.position >= len(self.data)

    def get_points(self, n: int) -> Optional[pd.DataFrame]:
        if n <= 0:
            raise ValueError("n must be positive")
        if self.is_finished():
            return None
        end = min(len(self.data), self.position + n)
        chunk = self.data.iloc[self.position:end]
        self.position = end
        return chunk

    def reset(self) -> None:
        self.position = 0
