from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dissect.lvm.lexer import Position


class Error(Exception):
    """Base class for exceptions for this module.
    It is used to recognize errors specific to this module"""

    pass


class LVM2Error(Error):
    pass


class TruncatedReadError(LVM2Error, EOFError):
    """The stream ended before a fixed-size structure or table sentinel was read."""

    def __init__(self, name: str, offset: int, expected: int, found: int):
        self.name = name
        self.offset = offset
        self.expected = expected
        self.found = found
        super().__init__(f"Truncated read of {name} at {offset:#x}: expected {expected} bytes, found {found}")


class BadLabelError(LVM2Error):
    pass


class MetadataAreaCorruptError(LVM2Error):
    def __init__(self, message: str, offset: int):
        self.offset = offset
        super().__init__(f"{message} (metadata area at {offset:#x})")


class MetadataParseError(LVM2Error):
    def __init__(self, message: str, position: Position):
        self.position = position
        super().__init__(f"{message} at {position}")


class LexError(MetadataParseError):
    pass


class ParseError(MetadataParseError):
    def __init__(self, message: str, position: Position, found: str | None = None, expected: str | None = None):
        self.found = found
        self.expected = expected
        super().__init__(message, position)


class UnexpectedShapeError(LVM2Error):
    def __init__(self, message: str, path: str):
        self.path = path
        super().__init__(f"{message} (in {path})" if path else message)
