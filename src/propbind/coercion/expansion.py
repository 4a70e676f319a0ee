from __future__ import annotations

import re
from typing import Mapping

_VARIABLE = re.compile(r"\$\{([^}]+)\}")

MAX_DEPTH = 10


def expand_variables(value: str, values: Mapping[str, str], *, max_depth: int = MAX_DEPTH) -> str:
    """Replace ${name} with the value of key name, recursively; unknown names stay as written."""

    def _expand(text: str, depth: int) -> str:
        if depth > max_depth or "${" not in text:
            return text

        def repl(m: re.Match[str]) -> str:
            name = m.group(1).strip()
            if name not in values:
                return m.group(0)
            return _expand(values[name], depth + 1)

        return _VARIABLE.sub(repl, text)

    return _expand(value, 0)
