"""Domain errors and failure typing."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class UnsupportedFormatError(PipelineError):
    """Raised when a file name suffix maps to no known container kind."""

    error_code = "UNSUPPORTED_FORMAT"


class EmptyFileError(PipelineError):
    """Raised when a file yields no data rows."""

    error_code = "EMPTY_FILE"


class ParseError(PipelineError):
    """Raised when container bytes cannot be decoded into rows."""

    error_code = "PARSE_ERROR"


class MissingColumnsError(PipelineError):
    """Raised when a header lacks required columns."""

    error_code = "MISSING_COLUMNS"

    def __init__(self, missing: tuple[str, ...] | list[str]) -> None:
        self.missing = tuple(missing)
        super().__init__(f"Missing required columns: {', '.join(self.missing)}")


class InvalidGeometryError(PipelineError):
    """Raised for a region boundary that cannot be used for containment tests.

    Recoverable: callers skip the offending region and carry on.
    """

    error_code = "INVALID_GEOMETRY"

    def __init__(self, message: str, *, region_index: int | None = None, region_name: str | None = None) -> None:
        self.region_index = region_index
        self.region_name = region_name
        super().__init__(message)


class StageError(PipelineError):
    """Raised when a background stage reports failure."""

    error_code = "STAGE_ERROR"

    def __init__(self, message: str, *, error_code: str | None = None) -> None:
        if error_code is not None:
            self.error_code = error_code
        super().__init__(message)
