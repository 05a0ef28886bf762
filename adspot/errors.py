"""
Error taxonomy for the ad detection pipeline.

Every failure raised by the package derives from AdSpotError, which carries a
stable machine-readable code and the process exit code the CLI should use.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypedDict


class ErrorRecord(TypedDict, total=False):
    code: str
    message: str
    path: str
    line: int


@dataclass(frozen=True)
class ErrorCodes:
    DIMENSION_MISMATCH: str = "E_DIMENSION_MISMATCH"
    MALFORMED_FILE: str = "E_MALFORMED_FILE"
    MISSING_RESOURCE: str = "E_MISSING_RESOURCE"
    DEGENERATE_INPUT: str = "E_DEGENERATE_INPUT"


ERROR = ErrorCodes()

EXIT_CODE_INVALID_INPUT = 2
EXIT_CODE_MISSING_INPUT = 3
EXIT_CODE_DEGENERATE_INPUT = 5


def make_error(code: str, message: str, **context: Any) -> ErrorRecord:
    err: ErrorRecord = {"code": code, "message": message}
    for k, v in context.items():
        if v is None:
            continue
        err[k] = v
    return err


class AdSpotError(RuntimeError):
    code: str = "E_ADSPOT"

    def __init__(self, message: str, *, exit_code: int = EXIT_CODE_INVALID_INPUT) -> None:
        super().__init__(message)
        self.exit_code = int(exit_code)

    def to_dict(self) -> ErrorRecord:
        return make_error(self.code, str(self))


class DimensionMismatch(AdSpotError):
    """Two fingerprints of different lengths were compared."""

    code = ERROR.DIMENSION_MISMATCH

    def __init__(self, left: int, right: int, *, context: str | None = None) -> None:
        msg = f"fingerprint length mismatch: {left} != {right}"
        if context:
            msg = f"{msg} ({context})"
        super().__init__(msg)
        self.left = int(left)
        self.right = int(right)


class MalformedFile(AdSpotError):
    """A header, row or config value failed to parse."""

    code = ERROR.MALFORMED_FILE

    def __init__(self, path: Path | str, message: str, *, line: int | None = None) -> None:
        where = f"{path}: line {line}" if line is not None else f"{path}"
        super().__init__(f"{where}: {message}")
        self.path = str(path)
        self.line = line
        self.detail = message

    def to_dict(self) -> ErrorRecord:
        return make_error(self.code, self.detail, path=self.path, line=self.line)


class MissingResource(AdSpotError):
    """A referenced video, descriptor or directory does not exist."""

    code = ERROR.MISSING_RESOURCE

    def __init__(self, path: Path | str, what: str = "file") -> None:
        super().__init__(f"{what} not found: {path}", exit_code=EXIT_CODE_MISSING_INPUT)
        self.path = str(path)

    def to_dict(self) -> ErrorRecord:
        return make_error(self.code, str(self), path=self.path)


class DegenerateInput(AdSpotError):
    """Input that is well formed but cannot be processed (zero duration, empty catalog)."""

    code = ERROR.DEGENERATE_INPUT

    def __init__(self, message: str) -> None:
        super().__init__(message, exit_code=EXIT_CODE_DEGENERATE_INPUT)
