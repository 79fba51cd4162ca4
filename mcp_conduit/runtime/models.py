"""Pydantic models for MCP Conduit runtime state.

These models serve dual purpose:
1. Internal lifecycle state for each provider connection
2. Response schemas for the status tool and the management API
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# ── Provider connection lifecycle ────────────────────────────────────────


class ConnectionPhase(str, Enum):
    """Lifecycle phases for a single provider connection.

    Transitions::

        IDLE → CONNECTING → CONNECTED ⇄ RECONNECTING → DISCONNECTED
                   ↑                                        │
                   └──────────── manual reconnect ──────────┘

    Any phase may move to CLOSED, which is terminal.
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"
    CLOSED = "closed"


_PHASE_TRANSITIONS: Dict[ConnectionPhase, frozenset[ConnectionPhase]] = {
    ConnectionPhase.IDLE: frozenset({ConnectionPhase.CONNECTING, ConnectionPhase.CLOSED}),
    ConnectionPhase.CONNECTING: frozenset(
        {
            ConnectionPhase.CONNECTED,
            ConnectionPhase.DISCONNECTED,
            ConnectionPhase.RECONNECTING,
            ConnectionPhase.CLOSED,
        }
    ),
    ConnectionPhase.CONNECTED: frozenset(
        {ConnectionPhase.RECONNECTING, ConnectionPhase.DISCONNECTED, ConnectionPhase.CLOSED}
    ),
    ConnectionPhase.RECONNECTING: frozenset(
        {ConnectionPhase.CONNECTING, ConnectionPhase.DISCONNECTED, ConnectionPhase.CLOSED}
    ),
    ConnectionPhase.DISCONNECTED: frozenset(
        {ConnectionPhase.CONNECTING, ConnectionPhase.RECONNECTING, ConnectionPhase.CLOSED}
    ),
    ConnectionPhase.CLOSED: frozenset(),
}


def is_valid_transition(current: ConnectionPhase, target: ConnectionPhase) -> bool:
    """Check whether a connection phase transition is allowed."""
    return target in _PHASE_TRANSITIONS.get(current, frozenset())


class Readiness(str, Enum):
    """Tri-state readiness the host queries synchronously."""

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"

    @classmethod
    def from_phase(cls, phase: ConnectionPhase) -> "Readiness":
        if phase == ConnectionPhase.CONNECTED:
            return cls.READY
        if phase in (ConnectionPhase.DISCONNECTED, ConnectionPhase.CLOSED):
            return cls.FAILED
        return cls.PENDING


class ConnectionCondition(BaseModel):
    """A timestamped condition entry for a provider connection."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    type: str = Field(description="Phase entered, e.g. 'connected', 'reconnecting'")
    status: str = Field(description="OK | Warning | Error")
    message: str = ""


_MAX_CONDITIONS = 50


class ConnectionRecord(BaseModel):
    """Lifecycle status for a single provider connection."""

    name: str
    phase: ConnectionPhase = ConnectionPhase.IDLE
    error: Optional[str] = None
    conditions: List[ConnectionCondition] = Field(default_factory=list)

    def transition(self, new_phase: ConnectionPhase, message: str = "") -> None:
        """Transition to *new_phase* and append a condition entry.

        Raises :class:`ValueError` if the transition is invalid.
        """
        if not is_valid_transition(self.phase, new_phase):
            raise ValueError(
                f"Invalid connection transition: {self.phase.value} → {new_phase.value}"
            )
        self.phase = new_phase
        if new_phase == ConnectionPhase.CONNECTED:
            status = "OK"
        elif new_phase == ConnectionPhase.DISCONNECTED:
            status = "Error"
        else:
            status = "Warning"
        self.conditions.append(
            ConnectionCondition(type=new_phase.value, status=status, message=message)
        )
        del self.conditions[:-_MAX_CONDITIONS]
        if new_phase == ConnectionPhase.DISCONNECTED and message:
            self.error = message
        elif new_phase == ConnectionPhase.CONNECTED:
            self.error = None

    @property
    def readiness(self) -> Readiness:
        return Readiness.from_phase(self.phase)

    @property
    def recent_conditions(self) -> List[ConnectionCondition]:
        """Return the 10 most recent conditions (newest first)."""
        return list(reversed(self.conditions[-10:]))


# ── Status snapshots ─────────────────────────────────────────────────────


class ProviderStatus(BaseModel):
    """Point-in-time status of one configured provider."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    name: str
    transport: str
    connected: bool = False
    tool_count: int = 0
    reconnect_attempts: int = 0
    phase: ConnectionPhase = ConnectionPhase.IDLE
    readiness: Readiness = Readiness.PENDING
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class BridgeStatus(BaseModel):
    """Overall bridge status snapshot, designed for JSON API responses."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    configured: int = 0
    connected: int = 0
    total_tools: int = 0
    tool_names: List[str] = Field(default_factory=list)
    servers: List[ProviderStatus] = Field(default_factory=list)
    disposed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
