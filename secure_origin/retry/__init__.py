"""
Retry Logic with Exponential Backoff
=====================================
Backoff used by the rotation coordinator for store writes and edge pushes.
"""

from .backoff import RetryExhausted, compute_delay, retry_with_backoff

__all__ = [
    "RetryExhausted",
    "compute_delay",
    "retry_with_backoff",
]
