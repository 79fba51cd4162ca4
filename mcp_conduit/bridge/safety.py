"""Pattern-based command safety gate.

A :class:`SafetyPolicy` is versioned, declarative data: an ordered allow-list
of regexes checked first, then an ordered list of block rules.  Evaluation is
a pure function of the lower-cased command text.

Example rule (YAML)::

    safety:
      block:
        - pattern: "rm\\s+-rf\\s+/"
          category: destroys-filesystem
          reason: 'Command BLOCKED: "{command}" deletes the filesystem root.'
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Iterable, Optional, Sequence, Tuple

from mcp_conduit.config.schema import SafetyConfig

logger = logging.getLogger(__name__)

REASON_COMMAND_CHARS = 80
LOG_COMMAND_CHARS = 120

DEFAULT_GUARDED_TOOLS: FrozenSet[str] = frozenset({"exec", "process"})

# Provider whose presence turns the built-in browser policy on (``enabled: auto``).
BROWSER_PROVIDER_NAME = "chrome-devtools"


@dataclass(frozen=True)
class SafetyRule:
    """A single block-list entry.

    ``reason`` may contain ``{command}``, replaced by the first
    :data:`REASON_COMMAND_CHARS` characters of the offending command.
    """

    pattern: str
    category: str
    reason: str
    alternative: str = ""

    def matches(self, command: str) -> bool:
        return re.search(self.pattern, command) is not None

    def describe(self, command: str) -> str:
        text = self.reason.replace("{command}", command[:REASON_COMMAND_CHARS])
        if self.alternative:
            text += f" Use the safe alternative instead: {self.alternative}"
        return text


@dataclass(frozen=True)
class SafetyDecision:
    """Outcome of :meth:`SafetyPolicy.evaluate`."""

    allowed: bool
    rule: Optional[SafetyRule] = None
    reason: str = ""
    allow_pattern: Optional[str] = None

    @property
    def category(self) -> Optional[str]:
        return self.rule.category if self.rule else None


@dataclass(frozen=True)
class BlockDecision:
    """Returned to the host's before-call hook when a call must not run."""

    reason: str
    blocked: bool = True
    category: Optional[str] = None

    def to_dict(self) -> dict:
        return {"blocked": self.blocked, "reason": self.reason}


def extract_command(params: Any) -> str:
    """Return the raw command text of a call's arguments.

    Accepts the argument text itself, or a mapping with a ``command`` (or
    ``cmd``) entry.
    """
    if isinstance(params, str):
        return params
    if isinstance(params, dict):
        value = params.get("command")
        if value is None:
            value = params.get("cmd")
        return "" if value is None else str(value)
    return ""


@dataclass(frozen=True)
class SafetyPolicy:
    """Ordered allow-list then block-list of command patterns."""

    version: str
    allow: Tuple[str, ...] = ()
    block: Tuple[SafetyRule, ...] = ()
    guarded_tools: FrozenSet[str] = field(default_factory=lambda: DEFAULT_GUARDED_TOOLS)

    def evaluate(self, command: str) -> SafetyDecision:
        text = command.lower()
        for pattern in self.allow:
            if re.search(pattern, text):
                return SafetyDecision(allowed=True, allow_pattern=pattern)
        for rule in self.block:
            if rule.matches(text):
                return SafetyDecision(allowed=False, rule=rule, reason=rule.describe(text))
        return SafetyDecision(allowed=True)

    def guards(self, tool_name: str) -> bool:
        return tool_name in self.guarded_tools

    def check_tool_call(self, tool_name: str, params: Any) -> Optional[BlockDecision]:
        """Before-call hook: ``None`` to allow, a :class:`BlockDecision` to refuse."""
        if not self.guards(tool_name):
            return None
        command = extract_command(params)
        decision = self.evaluate(command)
        if decision.allowed:
            return None
        logger.warning(
            "BLOCKED (%s) call to '%s': \"%s\"",
            decision.category,
            tool_name,
            command.lower()[:LOG_COMMAND_CHARS],
        )
        return BlockDecision(reason=decision.reason, category=decision.category)

    def extended(
        self,
        allow: Iterable[str] = (),
        block: Iterable[SafetyRule] = (),
        guarded_tools: Optional[Sequence[str]] = None,
    ) -> SafetyPolicy:
        """Return a copy with extra entries appended after the existing ones."""
        return SafetyPolicy(
            version=self.version,
            allow=self.allow + tuple(allow),
            block=self.block + tuple(block),
            guarded_tools=(
                frozenset(guarded_tools) if guarded_tools is not None else self.guarded_tools
            ),
        )


# ── Built-in browser protection ──────────────────────────────────────────

_SAFE_LAUNCHER = r"exec powershell .\scripts\ensure-chrome-debug.ps1"

_KILL_REASON = (
    'Command BLOCKED: "{command}" would kill Chrome and destroy all open tabs. '
    "NEVER kill Chrome."
)
_LAUNCH_REASON = (
    'Command BLOCKED: "{command}" launches Chrome directly, which may '
    "replace the running session and destroy all open tabs."
)

BROWSER_PROTECTION_POLICY = SafetyPolicy(
    version="1",
    allow=(r"ensure-chrome-debug\.ps1",),
    block=tuple(
        [
            SafetyRule(p, "kill-browser", _KILL_REASON, _SAFE_LAUNCHER)
            for p in (
                r"taskkill\b.*\bchrome",
                r"stop-process\b.*\bchrome",
                r"kill\b.*\bchrome",
                r"pkill\b.*\bchrome",
                r"killall\b.*\bchrome",
            )
        ]
        + [
            SafetyRule(p, "launch-browser", _LAUNCH_REASON, _SAFE_LAUNCHER)
            for p in (
                r"start-process\b.*\bchrome",
                r"start\s+chrome",
                r"chrome\.exe\b.*--remote-debugging",
            )
        ]
    ),
)


def build_safety_policy(
    settings: Optional[SafetyConfig], provider_names: Iterable[str]
) -> Optional[SafetyPolicy]:
    """Resolve the active policy for *settings* and the configured providers.

    ``enabled: auto`` activates the built-in policy only when the browser
    provider is configured.  Returns ``None`` when the gate is off.
    """
    settings = settings or SafetyConfig()
    if settings.enabled == "auto":
        active = BROWSER_PROVIDER_NAME in set(provider_names)
    else:
        active = bool(settings.enabled)
    if not active:
        return None

    policy = BROWSER_PROTECTION_POLICY.extended(
        allow=settings.allow,
        block=[
            SafetyRule(
                pattern=rule.pattern,
                category=rule.category,
                reason=rule.reason,
                alternative=rule.alternative,
            )
            for rule in settings.block
        ],
        guarded_tools=settings.guarded_tools,
    )
    logger.info(
        "Command safety gate active (policy v%s, %d allow, %d block rules, guarding %s).",
        policy.version,
        len(policy.allow),
        len(policy.block),
        ", ".join(sorted(policy.guarded_tools)),
    )
    return policy
