"""
Dataset sinks for persisted job records.
"""

from .sinks import DatasetSink, JsonlDatasetSink, MemorySink

__all__ = ["DatasetSink", "JsonlDatasetSink", "MemorySink"]
