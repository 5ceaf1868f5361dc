# src/library_store/core/logging/
# ├─ __init__.py            # public API: setup_logging, set_correlation_id
# ├─ builder.py             # make_dict_config(settings) + setup_logging(settings)
# ├─ formatters.py          # JsonFormatter, ColorFormatter
# ├─ filters.py             # CorrelationIdFilter (+ contextvar helpers), RedactFilter
# └─ handlers.py            # handler factories (console, rotating files)


from .builder import setup_logging, make_dict_config
from .filters import (
    CorrelationIdFilter,
    RedactFilter,
    get_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)

__all__ = [
    "setup_logging",
    "make_dict_config",
    "set_correlation_id",
    "get_correlation_id",
    "reset_correlation_id",
    "CorrelationIdFilter",
    "RedactFilter",
]
