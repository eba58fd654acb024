"""
Lease configuration obtained from a DHCPv6 Reply.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from netaddr import IPNetwork

from dhcp6pd.dhcp6.messages import Message

# "No deadline known", not "renew immediately"
ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class LeaseConfig:
    """The obtained network configuration."""
    renew_after: datetime = ZERO_TIME
    prefixes: tuple[IPNetwork, ...] = ()  # e.g. 2a02:168:4a00::/48
    dns: tuple[str, ...] = ()  # first entry is the primary server

    @property
    def has_lease(self) -> bool:
        return self.renew_after != ZERO_TIME

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid_until": self.renew_after.isoformat(),
            "prefixes": [str(prefix) for prefix in self.prefixes],
            "dns": list(self.dns),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LeaseConfig":
        renew_after = ZERO_TIME
        if data.get("valid_until"):
            renew_after = datetime.fromisoformat(data["valid_until"])
            if renew_after.tzinfo is None:
                renew_after = renew_after.replace(tzinfo=timezone.utc)
        return cls(
            renew_after=renew_after,
            prefixes=tuple(IPNetwork(p) for p in data.get("prefixes") or []),
            dns=tuple(data.get("dns") or []),
        )

    def save(self, path: str | Path) -> None:
        """Write the lease as JSON, replacing the file in one rename."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_text(json.dumps(self.to_dict(), indent=2) + "\n", encoding="utf-8")
        tmp_path.replace(path)

    @classmethod
    def load(cls, path: str | Path) -> "LeaseConfig":
        return cls.from_dict(json.loads(Path(path).read_text(encoding="utf-8")))


def extract_config(reply: Message, now: datetime) -> LeaseConfig:
    """
    Build the lease configuration carried by a Reply.

    renew_after is the earliest now + T1 over all IA_PD options, or
    ZERO_TIME if the reply has none. Prefixes and DNS servers keep the
    order they appear in, duplicates included.
    """
    renew_after = ZERO_TIME
    prefixes: list[IPNetwork] = []
    for association in reply.identity_associations():
        t1 = now + association.t1
        if renew_after == ZERO_TIME or t1 < renew_after:
            renew_after = t1
        for prefix in association.prefixes:
            prefixes.append(prefix.network)

    return LeaseConfig(
        renew_after=renew_after,
        prefixes=tuple(prefixes),
        dns=tuple(reply.dns_servers()),
    )
