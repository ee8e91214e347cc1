"""Tunnel state models."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ProviderKind(str, Enum):
    """Tunnel provider selector."""

    NONE = "none"
    SSH_FORWARD = "ssh-forward"
    MANAGED_BINARY_FORWARD = "managed-binary-forward"


class TunnelStatus(str, Enum):
    """Tunnel lifecycle status."""

    DISABLED = "disabled"
    CONNECTING = "connecting"
    ESTABLISHED = "established"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class TunnelState(BaseModel):
    """Immutable snapshot of the tunnel, replaced as a whole on every transition."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderKind = Field(default=ProviderKind.NONE)
    status: TunnelStatus = Field(default=TunnelStatus.DISABLED)
    public_base_url: str | None = Field(
        default=None, description="Public base URL, only while established"
    )
    pid: int | None = Field(default=None, description="Pid of the provider process")
    attempt: int = Field(default=0, ge=0, description="Spawn attempts in this session")
    last_error: str | None = Field(default=None)
    changed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @model_validator(mode="after")
    def check_url_matches_status(self) -> "TunnelState":
        """A public URL exists exactly while the tunnel is established."""
        if self.status == TunnelStatus.ESTABLISHED and not self.public_base_url:
            raise ValueError("An established tunnel must carry its public URL")
        if self.status != TunnelStatus.ESTABLISHED and self.public_base_url:
            raise ValueError(f"A {self.status.value} tunnel cannot carry a public URL")
        return self

    def transition(
        self,
        status: TunnelStatus,
        public_base_url: str | None = None,
        **changes: Any,
    ) -> "TunnelState":
        """Create the next snapshot; the URL is dropped unless given anew.

        Args:
            status: New status
            public_base_url: URL to publish, only valid with ESTABLISHED
            **changes: Other fields to update (pid, attempt, last_error)

        Returns:
            New, validated state instance
        """
        data = self.model_dump()
        data.update(changes)
        data.update(
            status=status,
            public_base_url=public_base_url,
            changed_at=datetime.now(UTC),
        )
        return TunnelState.model_validate(data)

    def summary(self) -> dict[str, Any]:
        return {
            "provider": self.provider.value,
            "status": self.status.value,
            "public_base_url": self.public_base_url,
            "attempt": self.attempt,
            "last_error": self.last_error,
        }
