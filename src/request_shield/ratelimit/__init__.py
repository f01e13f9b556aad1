# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Local fixed-window rate limiting."""

from .limiter import DEFAULT_BACKOFF_MS, RateLimiter

__all__ = ["DEFAULT_BACKOFF_MS", "RateLimiter"]
