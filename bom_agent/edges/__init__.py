# Conditional edges
from .error_handler import (
    route_after_scan,
    route_after_extraction,
    mark_batch_failed,
)

__all__ = [
    "route_after_scan",
    "route_after_extraction",
    "mark_batch_failed",
]
