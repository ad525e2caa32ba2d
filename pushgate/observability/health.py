# pushgate/observability/health.py
"""
Health checks: configuration, registered routes and provider connectivity.

Overall status is "error" if any check fails, "warning" if any warns,
"healthy" otherwise.
"""
from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from pushgate.core.logging_config import get_logger
from pushgate.engine.config import UploadConfig

logger = get_logger(__name__)

PROBE_KEY = "__pushgate_health_check__"


@dataclass
class HealthCheck:
    name: str
    status: str  # pass|warn|fail
    message: str
    details: Optional[Dict[str, Any]] = None
    duration_ms: float = 0.0


@dataclass
class HealthReport:
    status: str  # healthy|warning|error
    checks: List[HealthCheck] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _check_configuration(config: UploadConfig) -> HealthCheck:
    settings = getattr(config.provider, "settings", None)
    if settings is None:
        return HealthCheck("configuration", "pass", f"Provider '{config.provider.name}' needs no settings")
    missing = settings.missing_fields()
    if missing:
        return HealthCheck(
            "configuration",
            "fail",
            f"Missing required fields: {', '.join(missing)}",
            {"missing": missing, "provider": settings.provider},
        )
    return HealthCheck("configuration", "pass", "Configuration is valid", {"provider": settings.provider})


def _check_routes(router) -> HealthCheck:
    if router is None:
        return HealthCheck("routes", "warn", "No router supplied")
    names = router.route_names()
    if not names:
        return HealthCheck("routes", "warn", "No upload routes registered")
    return HealthCheck("routes", "pass", f"{len(names)} route(s) registered", {"routes": names})


async def _check_connectivity(config: UploadConfig) -> HealthCheck:
    try:
        exists = await config.provider.file_exists(PROBE_KEY)
    except Exception as e:
        return HealthCheck(
            "connectivity",
            "fail",
            f"Storage unreachable: {type(e).__name__}: {e}",
            {"provider": config.provider.name},
        )
    return HealthCheck(
        "connectivity",
        "pass",
        "Storage reachable",
        {"provider": config.provider.name, "probe_found": exists},
    )


async def run_health_checks(config: UploadConfig, router=None) -> HealthReport:
    checks: List[HealthCheck] = []

    for run in (
        lambda: _check_configuration(config),
        lambda: _check_routes(router),
        lambda: _check_connectivity(config),
    ):
        start = time.perf_counter()
        out = run()
        if hasattr(out, "__await__"):
            out = await out
        out.duration_ms = round((time.perf_counter() - start) * 1000, 3)
        checks.append(out)

    summary = {
        "total": len(checks),
        "passed": sum(c.status == "pass" for c in checks),
        "warnings": sum(c.status == "warn" for c in checks),
        "failures": sum(c.status == "fail" for c in checks),
    }
    if summary["failures"]:
        status = "error"
    elif summary["warnings"]:
        status = "warning"
    else:
        status = "healthy"

    logger.info("health_checks_completed", status=status, **summary)
    return HealthReport(status=status, checks=checks, summary=summary)
