"""Router FastAPI, uno per area. Le risposte usano {"data": ...} (+ "meta" per le liste paginate)."""
from __future__ import annotations

from typing import Any


def ok(data: Any, **meta: Any) -> dict[str, Any]:
    risposta: dict[str, Any] = {"data": data}
    if meta:
        risposta["meta"] = meta
    return risposta
