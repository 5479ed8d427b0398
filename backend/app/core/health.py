"""
Health check aggregation — deep health probe for the dispatcher's dependencies.

Checks:
    • Contacts store reachability (the in-memory store is DEGRADED)
    • Each channel provider's configuration (SMS, WhatsApp, email)

An unconfigured provider makes the service DEGRADED, not UNHEALTHY: the
dispatch still runs and every attempt on that channel is counted as
failed. An unreachable contacts store is UNHEALTHY because no dispatch
can succeed without it.

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from backend.app.alerts.channels.providers import ChannelProviders
from backend.app.alerts.contacts_store import ContactsStore
from backend.app.core.config import settings
from backend.app.core.errors import ContactsStoreError

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


# Track application start time
_start_time = time.monotonic()


async def check_contacts_store(store: ContactsStore) -> ComponentHealth:
    """Check the contacts store answers."""
    comp = ComponentHealth(name="contacts_store", details={"backend": store.name})
    start = time.monotonic()
    try:
        await store.ping()
        comp.message = "Contacts store reachable"
    except ContactsStoreError as e:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = e.message
    else:
        if not store.durable:
            comp.status = HealthStatus.DEGRADED
            comp.message = "In-memory contacts store: dispatches reach only contacts added in-process"
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


def check_providers(providers: ChannelProviders) -> List[ComponentHealth]:
    """One component per channel; missing credentials degrade the service."""
    components = []
    for entry in providers.describe():
        comp = ComponentHealth(
            name=f"{entry['channel']}_provider",
            details={"provider": entry["provider"]},
        )
        if entry["configured"]:
            comp.message = "Credentials configured"
        else:
            comp.status = HealthStatus.DEGRADED
            comp.message = "Credentials missing — deliveries on this channel will fail"
        components.append(comp)
    return components


async def run_health_check(store: ContactsStore, providers: ChannelProviders) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    report.components.append(await check_contacts_store(store))
    report.components.extend(check_providers(providers))

    # Aggregate status
    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    if report.status != HealthStatus.HEALTHY:
        logger.warning("Health check %s", report.status.value)
    return report
