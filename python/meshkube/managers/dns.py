"""
meshkube/managers/dns.py

Plans the DNS records for a cluster:
  - api.<domain>    one A record per master
  - <node>.<domain> one A record per node

Records are exported through the deploy context for the configured DNS
provider to publish; creating them at the registrar is outside this package.
"""

from __future__ import annotations

import logging
from typing import Dict, List

from pydantic import BaseModel

from meshkube.context import DeployContext
from meshkube.errors import ValidationFailedError
from meshkube.models.cluster_config import DNSConfig
from meshkube.models.nodes import NodeOutput

logger = logging.getLogger(__name__)


class DNSRecord(BaseModel):
    name: str
    type: str = "A"
    value: str
    ttl: int = 300


class DNSManager:
    def __init__(self, config: DNSConfig) -> None:
        self.config = config
        self.records: List[DNSRecord] = []

    @property
    def enabled(self) -> bool:
        return bool(self.config.domain)

    def validate(self) -> None:
        if self.config.domain and not self.config.provider:
            raise ValidationFailedError("DNS", "DNS provider is required when a domain is set")

    def plan_records(self, nodes: List[NodeOutput]) -> List[DNSRecord]:
        if not self.enabled:
            return []
        domain = self.config.domain
        ttl = self.config.ttl
        records = [
            DNSRecord(name=f"api.{domain}", value=n.public_ip, ttl=ttl)
            for n in nodes
            if n.is_master and n.public_ip
        ]
        records += [
            DNSRecord(name=f"{n.name}.{domain}", value=n.public_ip, ttl=ttl)
            for n in nodes
            if n.public_ip
        ]
        return records

    def publish(self, ctx: DeployContext, nodes: List[NodeOutput]) -> List[DNSRecord]:
        self.records = self.plan_records(nodes)
        if self.records:
            ctx.export("dns_records", [r.model_dump() for r in self.records])
            logger.info("Planned %d DNS records under %s", len(self.records), self.config.domain)
        return list(self.records)

    def summary(self) -> Dict[str, List[str]]:
        out: Dict[str, List[str]] = {}
        for record in self.records:
            out.setdefault(record.name, []).append(record.value)
        return out
