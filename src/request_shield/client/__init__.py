# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Connector, request preparation and simple authenticators."""

from .auth import BasicAuth, BearerAuth, HeaderAuth, QueryAuth
from .connector import Connector
from .preparation import build_url, encode_body, merge_headers, prepare_call

__all__ = [
    "BasicAuth",
    "BearerAuth",
    "Connector",
    "HeaderAuth",
    "QueryAuth",
    "build_url",
    "encode_body",
    "merge_headers",
    "prepare_call",
]
