"""Mutable in-memory source for staleness tests."""

from typing import Optional

from script_layers.source import Source


class MockSource(Source):
    """Source whose text and watermark can be changed by the test"""

    def __init__(self, source_id: str, text: str = '', name: Optional[str] = None, last_modified: float = 0):
        self._id = source_id
        self.text = text
        self.name = name
        self.modified = last_modified

    @property
    def id(self) -> str:
        return self._id

    @property
    def last_modified(self) -> float:
        return self.modified

    @property
    def name_hint(self) -> Optional[str]:
        return self.name

    def read_text(self) -> str:
        return self.text

    def change(self, text: str) -> None:
        """Replace the text and move the watermark"""
        self.text = text
        self.modified += 1
