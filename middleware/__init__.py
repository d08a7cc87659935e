"""
HealthyMeal Middleware
Request logging and log masking helpers
"""

from .logging import LoggingMiddleware, log_business_event, mask_sensitive_data

__all__ = [
    "LoggingMiddleware",
    "log_business_event",
    "mask_sensitive_data",
]
