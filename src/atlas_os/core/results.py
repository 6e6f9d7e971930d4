# src/atlas_os/core/results.py

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


@dataclass(slots=True)
class HandlerResult:
    """Status code + JSON body returned by every action handler."""

    status: int
    body: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def success(body: dict[str, Any] | None = None) -> HandlerResult:
    return HandlerResult(200, dict(body or {}))


def error(message: str, status: int = 500) -> HandlerResult:
    return HandlerResult(status, {"error": message})


def bad_request(message: str) -> HandlerResult:
    return error(message, 400)


def not_found(message: str = "Not found") -> HandlerResult:
    return error(message, 404)


def is_valid_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(_UUID_RE.match(value))


def filter_valid_uuids(values: Iterable[Any]) -> list[str]:
    return [v for v in values if is_valid_uuid(v)]
