"""持久化"""

from whale_watch.storage.watermark import WatermarkStore
from whale_watch.storage.sqlite_storage import SQLiteStorage
from whale_watch.storage.csv_sink import CSVSink, render_csv_lines

__all__ = [
    "WatermarkStore",
    "SQLiteStorage",
    "CSVSink",
    "render_csv_lines",
]
