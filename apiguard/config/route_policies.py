"""Startup-time CSRF route policy table loaded from YAML."""

from __future__ import annotations

import enum
import fnmatch
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger()


class RoutePolicy(str, enum.Enum):
    exempt = "exempt"
    enforced = "enforced"


@dataclass(frozen=True)
class RouteRule:
    method: str
    pattern: str
    policy: RoutePolicy

    def matches(self, method: str, path: str) -> bool:
        if self.method != "*" and self.method != method.upper():
            return False
        return fnmatch.fnmatchcase(path, self.pattern)


class RouteTable:
    """Ordered, immutable list of route rules.

    First matching rule wins; unlisted routes are enforced.
    """

    def __init__(self, rules: list[RouteRule] | None = None) -> None:
        self._rules = tuple(rules or ())

    def __len__(self) -> int:
        return len(self._rules)

    @property
    def rules(self) -> tuple[RouteRule, ...]:
        return self._rules

    def resolve(self, method: str, path: str) -> RoutePolicy:
        for rule in self._rules:
            if rule.matches(method, path):
                return rule.policy
        return RoutePolicy.enforced

    def is_exempt(self, method: str, path: str) -> bool:
        return self.resolve(method, path) is RoutePolicy.exempt

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> RouteTable:
        """Build a table from ``{"METHOD /path": "exempt" | "enforced"}``."""
        rules: list[RouteRule] = []
        for key, value in data.items():
            parts = str(key).split(None, 1)
            if len(parts) != 2:
                raise ValueError(f"Route key must be 'METHOD /path', got {key!r}")
            method, pattern = parts
            try:
                policy = RoutePolicy(str(value).lower())
            except ValueError:
                raise ValueError(f"Unknown route policy {value!r} for {key!r}") from None
            rules.append(RouteRule(method=method.upper(), pattern=pattern, policy=policy))
        return cls(rules)


def load_route_table(path: str | Path) -> RouteTable:
    """Load the route table from YAML, returning an empty table if the file is missing."""
    path = Path(path)
    if not path.exists():
        logger.warning("route_policies_not_found", path=str(path))
        return RouteTable()
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    table = RouteTable.from_mapping(data)
    logger.info("route_policies_loaded", path=str(path), rules=len(table))
    return table
