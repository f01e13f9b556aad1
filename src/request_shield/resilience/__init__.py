# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Circuit breaking and retrying."""

from ..types.circuit import CircuitSnapshot, CircuitState
from .circuit import Admission, CircuitBreaker, resolve_circuit_key
from .retry import NEVER_RETRIED, RetryContext, RetryHandler

__all__ = [
    "NEVER_RETRIED",
    "Admission",
    "CircuitBreaker",
    "CircuitSnapshot",
    "CircuitState",
    "RetryContext",
    "RetryHandler",
    "resolve_circuit_key",
]
