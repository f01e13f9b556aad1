# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Key template rendering.

Templates such as ``"users:{user_id}:posts"`` are rendered from an explicit
mapping of named values (``Request.key_values``). Placeholders with no
matching value are left in the output literally.
"""

import re
from collections.abc import Mapping
from typing import Any

from .exceptions import CacheKeyError

_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


def _format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def render_key_template(
    template: str,
    values: Mapping[str, Any],
    strict: bool = True,
) -> str:
    """
    Substitute ``{name}`` placeholders in ``template`` from ``values``.

    Args:
        template: Template string
        values: Named values available for substitution
        strict: Raise CacheKeyError for non-scalar values instead of
            leaving the placeholder untouched

    Returns:
        The rendered key

    Raises:
        CacheKeyError: If a referenced value is not a scalar and strict is set
    """

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in values or values[name] is None:
            return match.group(0)
        value = values[name]
        if not _is_scalar(value):
            if strict:
                raise CacheKeyError.value_must_be_scalar(name)
            return match.group(0)
        return _format_scalar(value)

    return _PLACEHOLDER.sub(substitute, template)


__all__ = ["render_key_template"]
