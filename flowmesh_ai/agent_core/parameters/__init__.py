"""Parameter resolution: merge AI arguments with operator presets."""

from .merger import (
    ArrayAppendStrategy,
    ArrayMergeStrategy,
    ReplaceStrategy,
    SettingsMerger,
    deep_copy,
)
from .peekable import PeekableValueResolver, match_peek_item
from .resolver import (
    SPECIAL_KEYS,
    ParameterResolution,
    ParameterResolutionResult,
    ParameterResolver,
    ResolutionSource,
)

__all__ = [
    "ArrayAppendStrategy",
    "ArrayMergeStrategy",
    "ParameterResolution",
    "ParameterResolutionResult",
    "ParameterResolver",
    "PeekableValueResolver",
    "ReplaceStrategy",
    "ResolutionSource",
    "SPECIAL_KEYS",
    "SettingsMerger",
    "deep_copy",
    "match_peek_item",
]
