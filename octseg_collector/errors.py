"""
Configuration errors raised while resolving collector options.

Every failure the resolver detects itself is a ConfigError carrying a
ConfigErrorKind. Failures raised by the data/label loaders during the sample
probe are NOT wrapped: the caller sees the loader's own exception.
"""

from enum import Enum
from typing import Optional


class ConfigErrorKind(Enum):
    """Category of a configuration failure."""

    MISSING_CLIP_RANGE = "missing_clip_range"
    EMPTY_FILE_LIST = "empty_file_list"
    INVALID_CLIP_RANGE = "invalid_clip_range"
    INVALID_LABEL_IDS = "invalid_label_ids"
    INVALID_RANGE = "invalid_range"
    INVALID_SAMPLE = "invalid_sample"
    INVALID_VALUE = "invalid_value"
    UNKNOWN_LOADER = "unknown_loader"
    UNKNOWN_PREPROCESSING_STEP = "unknown_preprocessing_step"


class ConfigError(ValueError):
    """
    Raised when collector options cannot be resolved into a valid config.

    Subclasses ValueError so callers validating user input the usual way
    keep working.

    Attributes:
        kind: Category of the failure.
        field: Name of the offending option, if any.
    """

    def __init__(
        self, kind: ConfigErrorKind, message: str, field: Optional[str] = None
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.field = field

    def __str__(self) -> str:
        base = super().__str__()
        if self.field:
            return f"[{self.kind.value}] {self.field}: {base}"
        return f"[{self.kind.value}] {base}"


__all__ = ["ConfigError", "ConfigErrorKind"]
