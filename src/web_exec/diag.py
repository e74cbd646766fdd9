from __future__ import annotations

"""diag.py — короткие диагностические строки в stderr (как [HTTP] у HttpEngine).

Никакого logging-конфига: компонент держит флаг diag и последний dict в last_diag.
"""

import sys
from typing import Any, Optional, TextIO


def format_diag(tag: str, d: dict[str, Any]) -> str:
    parts = [f"[{tag}]"]
    for k, v in d.items():
        if v is None or v == "":
            continue
        parts.append(f"{k}={v}")
    return " ".join(parts)


class DiagMixin:
    """Gives a component `diag`, `last_diag` and `_emit_diag`."""

    diag_tag: str = "DIAG"
    diag: bool = False
    last_diag: Optional[dict[str, Any]] = None
    diag_stream: Optional[TextIO] = None

    def _emit_diag(self, d: dict[str, Any]) -> None:
        self.last_diag = d
        if not self.diag:
            return
        stream = self.diag_stream or sys.stderr
        # url может быть длинным, поэтому в конец
        if "url" in d:
            d = {k: v for k, v in d.items() if k != "url"} | {"url": d["url"]}
        stream.write(format_diag(self.diag_tag, d) + "\n")
