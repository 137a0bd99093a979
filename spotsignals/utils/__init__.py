# Shared utilities: input validators, retry
from spotsignals.utils.retry import with_retry
from spotsignals.utils.validators import (
    parse_enum,
    parse_enum_list,
    validate_candles,
    validate_series,
    validate_time_range,
)

__all__ = [
    "parse_enum",
    "parse_enum_list",
    "validate_candles",
    "validate_series",
    "validate_time_range",
    "with_retry",
]
