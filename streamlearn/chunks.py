#!/usr/bin/env python3
"""
Chunk iterator: pulls bounded chunks from a data stream until it is finished.

Each step:
  1. stop if stream.is_finished()
  2. rows = stream.get_points(chunk_size); stop if None or empty
     (a stream that lags its own finished flag)
  3. rows = transform(rows)
  4. frame = model_frame(rows, projection); the frame may be empty when the
     NA policy or subset drops every row

The iterator yields (index, rows, frame) with index starting at 1 and records
why it stopped in stop_reason.
"""
from enum import Enum
from typing import Callable, Iterator, Optional, Tuple

import pandas as pd
from loguru import logger

from streamlearn.datastream import DataStream
from streamlearn.projection import Projection, model_frame


class StopReason(str, Enum):
    FINISHED = "finished"
    STALLED = "stalled"
    BUDGET = "budget"


def identity(frame: pd.DataFrame) -> pd.DataFrame:
    return frame


def row_range(index: int, chunk_size: int) -> str:
    return f"{(index - 1) * chunk_size}:{index * chunk_size}"


class ChunkIterator:
    def __init__(
        self,
        stream: DataStream,
        chunk_size: int,
        projection: Projection,
        transform: Optional[Callable[[pd.DataFrame], pd.DataFrame]] = None,
        trace: bool = False,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.stream = stream
        self.chunk_size = int(chunk_size)
        self.projection = projection
        self.transform = transform or identity
        self.trace = trace
        self.index = 0
        self.stop_reason: Optional[StopReason] = None

    def stop(self, reason: StopReason) -> None:
        self.stop_reason = reason

    def __iter__(self) -> Iterator[Tuple[int, pd.DataFrame, pd.DataFrame]]:
        while self.stop_reason is None:
            if self.stream.is_finished():
                self.stop_reason = StopReason.FINISHED
                break
            i = self.index + 1
            if self.trace:
                logger.info("Running chunk {}: instances {}", i, row_range(i, self.chunk_size))
            rows = self.stream.get_points(self.chunk_size)
            if rows is None or len(rows) == 0:
                logger.warning("stream is not finished but returned no rows; ending after {} chunks", self.index)
                self.stop_reason = StopReason.STALLED
                break
            self.index = i
            rows = self.transform(rows)
            if not self.projection.resolved:
                # "." is expanded once, from the first chunk's columns
                self.projection = self.projection.resolve(rows.columns)
            frame = model_frame(rows, self.projection)
            logger.debug("chunk {}: {} rows fetched, {} after projection", i, len(rows), len(frame))
            yield i, rows, frame
