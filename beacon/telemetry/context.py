"""Process-wide telemetry context, built once at startup."""

from __future__ import annotations

import os
import platform
from dataclasses import dataclass
from typing import Optional

from beacon.telemetry.allowlists import AllowlistSet
from beacon.telemetry.consent import ConsentGate
from beacon.telemetry.identity import IdentityManager, NodeIdentity, new_session_identity
from beacon.telemetry.scrubber import Scrubber

# Set by installers and container images to tell distribution channels apart.
DISTRIBUTION_CHANNEL_ENV_VAR = "BEACON_DISTRIBUTION_CHANNEL"


def _os_description() -> str:
    return f"{platform.system()} {platform.release()}".strip() or "unknown"


@dataclass(frozen=True)
class TelemetryContext:
    """Immutable state every shaper call reads: consent, identities, allowlists.

    ``node`` is None when telemetry is disabled; the identity file is never
    touched in that case.
    """

    enabled: bool
    scrubber: Scrubber
    session_id: str
    node: Optional[NodeIdentity] = None
    host_version: str = ""
    distribution_channel: str = "unknown"
    os_description: str = "unknown"

    @property
    def node_id(self) -> str:
        return str(self.node) if self.node is not None else ""

    @classmethod
    def disabled(cls, allowlists: Optional[AllowlistSet] = None) -> "TelemetryContext":
        return cls(enabled=False, scrubber=Scrubber(allowlists), session_id="")

    @classmethod
    def create(
        cls,
        consent: ConsentGate,
        identity: IdentityManager,
        allowlists: Optional[AllowlistSet] = None,
        host_version: str = "",
    ) -> "TelemetryContext":
        if not consent.is_enabled():
            return cls.disabled(allowlists)

        return cls(
            enabled=True,
            scrubber=Scrubber(allowlists),
            session_id=new_session_identity(),
            node=identity.get_node_identity(),
            host_version=host_version,
            distribution_channel=os.environ.get(DISTRIBUTION_CHANNEL_ENV_VAR) or "unknown",
            os_description=_os_description(),
        )
