"""
Section codec: persisted NOTE lines <-> ordered segments.

A dynamic region is delimited in-band by ``[f(`` and ``)]``. Delimiter
irregularities never raise:

- an open delimiter seen inside a dynamic block is kept verbatim as code;
  only the next close delimiter ends the block
- an open delimiter that is never closed absorbs every remaining line into
  one trailing dynamic segment
"""
from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional

from .models import CLOSE_DELIMITER, OPEN_DELIMITER, NoteLine, Segment, TestCase


def _line_text(item: Any) -> str:
    if isinstance(item, NoteLine):
        return item.text
    if isinstance(item, Mapping):
        raw = item.get("TEXT")
        if raw is None:
            raw = item.get("text")
        return "" if raw is None else str(raw)
    if item is None:
        return ""
    return str(item)


class _SegmentBuilder:
    def __init__(self) -> None:
        self.segments: List[Segment] = []
        self.static_lines: List[str] = []
        self.dynamic_lines: Optional[List[str]] = None

    def add_static(self, text: str) -> None:
        self.static_lines.append(text)

    def flush_static(self) -> None:
        content = "\n".join(self.static_lines).strip()
        self.static_lines = []
        if content:
            self.segments.append(Segment(id=len(self.segments) + 1, kind="static", content=content))

    def open_dynamic(self, first: str) -> None:
        self.dynamic_lines = [first]

    def close_dynamic(self, last: Optional[str] = None) -> None:
        lines = self.dynamic_lines or []
        if last is not None:
            lines.append(last)
        self.dynamic_lines = None
        self.segments.append(
            Segment(
                id=len(self.segments) + 1,
                kind="dynamic",
                content="\n".join(lines).strip(),
                test_cases=[TestCase(name="Default")],
            )
        )

    @property
    def in_dynamic(self) -> bool:
        return self.dynamic_lines is not None


def parse_notes(lines: Optional[Iterable[Any]]) -> List[Segment]:
    """Parse NOTE records (or plain strings) into ordered segments."""
    b = _SegmentBuilder()
    if not lines:
        return []

    for item in lines:
        text = _line_text(item)

        if b.in_dynamic:
            end = text.find(CLOSE_DELIMITER)
            if end == -1:
                b.dynamic_lines.append(text)  # type: ignore[union-attr]
                continue
            b.close_dynamic(text[:end])
            text = text[end + len(CLOSE_DELIMITER):]
            if not text.strip():
                continue

        # outside a block: a line may hold several single-line blocks
        while True:
            start = text.find(OPEN_DELIMITER)
            if start == -1:
                b.add_static(text)
                break

            before = text[:start]
            if before.strip():
                b.add_static(before)
            b.flush_static()

            rest = text[start + len(OPEN_DELIMITER):]
            end = rest.find(CLOSE_DELIMITER)
            if end == -1:
                b.open_dynamic(rest)
                break

            b.open_dynamic(rest[:end])
            b.close_dynamic()
            text = rest[end + len(CLOSE_DELIMITER):]
            if not text.strip():
                break

    if b.in_dynamic:
        b.close_dynamic()
    b.flush_static()
    return b.segments


def serialize_to_strings(segments: Optional[Iterable[Segment]]) -> List[str]:
    out: List[str] = []
    for seg in segments or []:
        if seg.kind == "static":
            out.extend(seg.content.split("\n"))
        elif seg.kind == "dynamic":
            out.append(OPEN_DELIMITER)
            out.extend(seg.content.split("\n"))
            out.append(CLOSE_DELIMITER)
    return out


def serialize_segments(segments: Optional[Iterable[Segment]]) -> List[NoteLine]:
    return [NoteLine(text=line) for line in serialize_to_strings(segments)]


def is_valid_note_format(obj: Any) -> bool:
    if not isinstance(obj, list):
        return False
    return all(isinstance(item, Mapping) and isinstance(item.get("TEXT"), str) for item in obj)
