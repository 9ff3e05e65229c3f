from .codec import is_valid_note_format, parse_notes, serialize_segments, serialize_to_strings
from .models import CLOSE_DELIMITER, OPEN_DELIMITER, NoteLine, Segment, TestCase

__all__ = [
    "CLOSE_DELIMITER",
    "OPEN_DELIMITER",
    "NoteLine",
    "Segment",
    "TestCase",
    "is_valid_note_format",
    "parse_notes",
    "serialize_segments",
    "serialize_to_strings",
]
