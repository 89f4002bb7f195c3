"""External integrations for card payment processing."""
from .rexpay_client import RexpayClient

__all__ = ["RexpayClient"]
