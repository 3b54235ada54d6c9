"""
Error taxonomy for decoding, extraction and assembly.

Every error is a ``ValueError`` so callers that already guard input parsing
with ``except ValueError`` keep working.
"""


class DecodeError(ValueError):
    """Raised when a byte buffer cannot be turned into a Dataset."""


class InvalidFormat(DecodeError):
    """Buffer too short or magic string missing."""


class UnexpectedEndOfInput(DecodeError):
    """Element header or terminator runs past the end of the buffer."""


class CorruptedData(DecodeError):
    """Declared length exceeds the remaining buffer or the sanity ceiling."""


class ExtractionError(ValueError):
    """Raised when decoded elements cannot be interpreted as a record."""


class MissingRequiredTag(ExtractionError):
    pass


class TypeMismatch(ExtractionError):
    pass


class AssemblyError(ValueError):
    """Raised when slices cannot form a usable volume."""


class EmptyInput(AssemblyError):
    pass


class InconsistentGeometry(AssemblyError):
    pass


__all__ = [
    "DecodeError",
    "InvalidFormat",
    "UnexpectedEndOfInput",
    "CorruptedData",
    "ExtractionError",
    "MissingRequiredTag",
    "TypeMismatch",
    "AssemblyError",
    "EmptyInput",
    "InconsistentGeometry",
]
