"""Hybrid merge/read layer — hot window + daily summary into one view."""

from .reader import (
    DayStatus,
    MergeCache,
    MergedView,
    MergeReader,
    MergeSource,
    Thresholds,
    classify_day,
    fetch_snapshot,
    get_merged,
)
from .sources import (
    DataSource,
    HotWindow,
    HttpDataSource,
    LocalDataSource,
    parse_hot_window,
    parse_summary_document,
)
