# expressions.py
"""
`${{ ... }}` substitution.

Only plain context lookups are supported: `matrix.<axis>` and `env.<NAME>`.
Unknown contexts and missing keys expand to the empty string.
"""
from __future__ import annotations

import re
from typing import Any, Mapping

_EXPR = re.compile(r"\$\{\{\s*([A-Za-z_][\w-]*)\.([A-Za-z_][\w-]*)\s*\}\}")


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def substitute(
    text: str,
    *,
    matrix: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
) -> str:
    contexts = {"matrix": matrix or {}, "env": env or {}}

    def repl(m: re.Match) -> str:
        ctx = contexts.get(m.group(1))
        if ctx is None:
            return ""
        return _stringify(ctx.get(m.group(2)))

    return _EXPR.sub(repl, text)

