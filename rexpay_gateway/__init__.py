"""Rexpay card-gateway orchestration."""
from rexpay_gateway.core.orchestrator import PaymentOrchestrator

__all__ = ["PaymentOrchestrator"]

__version__ = "0.1.0"
