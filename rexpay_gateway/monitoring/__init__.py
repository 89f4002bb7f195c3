"""Monitoring and observability package."""
from .logging import get_logger, setup_logging
from .metrics import PaymentMetrics

__all__ = ["PaymentMetrics", "get_logger", "setup_logging"]
