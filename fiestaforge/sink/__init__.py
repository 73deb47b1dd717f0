from .csv_sink import ResultSink
from .types import HEADER, ResultRow, SinkClosed, SinkError

__all__ = ["ResultSink", "ResultRow", "HEADER", "SinkClosed", "SinkError"]
