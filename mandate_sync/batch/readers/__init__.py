"""
Mandate file readers.
"""

from .file_reader import MandateFileReader
from .record_parser import FIELD_LAYOUT, MandateRecordParser

__all__ = [
    "FIELD_LAYOUT",
    "MandateFileReader",
    "MandateRecordParser",
]
