"""Rule-based permission checks for tool usage.

The tool executor does not consult this module; callers that want
enforcement check a call before dispatching it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping, Sequence

logger = logging.getLogger(__name__)


class PermissionDecision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    ASK = "ask"


@dataclass(frozen=True)
class PermissionRule:
    """Tool glob, action, and optional argument substrings.

    `*` matches any run of characters except `/`, `**` matches anything, and
    a bare `*` matches every tool. With patterns, the rule only matches when
    some string argument contains one of them.
    """

    tool: str
    action: PermissionDecision
    patterns: tuple[str, ...] | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PermissionRule":
        patterns = payload.get("patterns")
        return cls(
            tool=str(payload["tool"]),
            action=PermissionDecision(str(payload["action"]).lower()),
            patterns=tuple(str(item) for item in patterns) if patterns is not None else None,
        )


@dataclass(frozen=True)
class PermissionContext:
    """Attributes of one tool invocation under evaluation."""

    tool: str
    arguments: Any = field(default_factory=dict)
    session_id: str = "system"


AskHandler = Callable[[PermissionContext], Awaitable[PermissionDecision]]


def tool_pattern_to_regex(pattern: str) -> re.Pattern[str]:
    parts: list[str] = []
    index = 0
    while index < len(pattern):
        if pattern.startswith("**", index):
            parts.append(".*")
            index += 2
        elif pattern[index] == "*":
            parts.append("[^/]*")
            index += 1
        else:
            parts.append(re.escape(pattern[index]))
            index += 1
    return re.compile("^" + "".join(parts) + "$")


def tool_matches(pattern: str, tool: str) -> bool:
    if pattern == "*":
        return True
    return tool_pattern_to_regex(pattern).match(tool) is not None


def arguments_match(patterns: Sequence[str], arguments: Any) -> bool:
    if not patterns:
        return True
    if isinstance(arguments, str):
        values: Iterable[Any] = [arguments]
    elif isinstance(arguments, Mapping):
        values = arguments.values()
    else:
        values = []
    strings = [value for value in values if isinstance(value, str)]
    return any(pattern in value for pattern in patterns for value in strings)


class PermissionManager:
    """Ordered rule list; first match wins and no match means deny."""

    def __init__(
        self,
        rules: Iterable[PermissionRule] | None = None,
        *,
        ask_handler: AskHandler | None = None,
    ):
        self.rules: list[PermissionRule] = list(rules or [])
        self.ask_handler = ask_handler

    def add_rule(self, rule: PermissionRule) -> None:
        self.rules.append(rule)

    def matches(self, rule: PermissionRule, context: PermissionContext) -> bool:
        if not tool_matches(rule.tool, context.tool):
            return False
        if rule.patterns is not None and not arguments_match(rule.patterns, context.arguments):
            return False
        return True

    async def check(
        self, tool_name: str, arguments: Any = None, session_id: str = "system"
    ) -> PermissionDecision:
        """Evaluate a call; `ask` rules defer to the ask handler."""
        context = PermissionContext(
            tool=tool_name,
            arguments=arguments if arguments is not None else {},
            session_id=session_id,
        )
        for rule in self.rules:
            if not self.matches(rule, context):
                continue
            if rule.action != PermissionDecision.ASK:
                return rule.action
            return await self._ask(context)
        logger.debug(
            "no permission rule matched tool=%s", tool_name, extra={"session_id": session_id}
        )
        return PermissionDecision.DENY

    async def _ask(self, context: PermissionContext) -> PermissionDecision:
        if self.ask_handler is None:
            return PermissionDecision.DENY
        decision = PermissionDecision(await self.ask_handler(context))
        if decision == PermissionDecision.ASK:
            return PermissionDecision.DENY
        return decision
