"""
Connection source variants.

A connection is either a direct payment-provider integration or a
self-hosted standalone app. Each variant carries only the fields it needs
and fixes its own trust level, so a standalone source without an endpoint
cannot be constructed.
"""

from dataclasses import dataclass
from typing import ClassVar, Optional, Union

from .models import ConnectionType, DataConnection, TrustLevel, VerifiedBy


class ConnectionConfigError(ValueError):
    """A connection's stored fields do not form a valid source."""


@dataclass(frozen=True)
class DirectSource:
    """Payment provider integration (platform verified)."""
    provider: str
    api_key_encrypted: str
    api_secret_encrypted: Optional[str] = None

    kind: ClassVar[ConnectionType] = ConnectionType.DIRECT
    trust_level: ClassVar[TrustLevel] = TrustLevel.PLATFORM_VERIFIED
    verified_by: ClassVar[VerifiedBy] = VerifiedBy.PLATFORM
    verification_method: ClassVar[str] = "api_integration"

    def __post_init__(self):
        if not self.provider:
            raise ConnectionConfigError("Direct connection requires a provider")
        if not self.api_key_encrypted:
            raise ConnectionConfigError("Direct connection requires an API key")


@dataclass(frozen=True)
class StandaloneSource:
    """Self-hosted revenue app (self reported, signed)."""
    endpoint: str
    api_key_encrypted: str
    public_key: Optional[str] = None

    kind: ClassVar[ConnectionType] = ConnectionType.STANDALONE
    trust_level: ClassVar[TrustLevel] = TrustLevel.SELF_REPORTED
    verified_by: ClassVar[VerifiedBy] = VerifiedBy.SELF
    verification_method: ClassVar[str] = "signature"

    def __post_init__(self):
        if not self.endpoint:
            raise ConnectionConfigError("Standalone connection requires an endpoint")
        if not self.api_key_encrypted:
            raise ConnectionConfigError("Standalone connection requires an API key")


ConnectionSource = Union[DirectSource, StandaloneSource]


def source_from_connection(connection: DataConnection) -> ConnectionSource:
    """Rebuild the source variant from a stored connection row."""
    if connection.type == ConnectionType.DIRECT:
        return DirectSource(
            provider=connection.provider or "",
            api_key_encrypted=connection.api_key_encrypted or "",
            api_secret_encrypted=connection.api_secret_encrypted,
        )
    if connection.type == ConnectionType.STANDALONE:
        return StandaloneSource(
            endpoint=connection.endpoint or "",
            api_key_encrypted=connection.standalone_key_encrypted or "",
            public_key=connection.public_key,
        )
    raise ConnectionConfigError(f"Unknown connection type: {connection.type}")
