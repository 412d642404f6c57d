"""
Configuration for the scanner adapter.

All settings come from environment variables (``SCANNER_*``). Durations use the
same notation as the Trivy CLI, e.g. ``5m0s``, ``1h`` or ``90s``.
"""

import os
import re
import logging
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel

from scanner_adapter.exceptions import ConfigError
from scanner_adapter.models import Scanner

logger = logging.getLogger(__name__)

ADAPTER_VCS_URL = "https://github.com/aquasecurity/harbor-scanner-trivy"

_TRUE_VALUES = {"1", "t", "true"}
_FALSE_VALUES = {"0", "f", "false"}

_DURATION_UNITS = {
    "h": 3600 * 1_000_000,
    "m": 60 * 1_000_000,
    "s": 1_000_000,
    "ms": 1000,
    "us": 1,
    "µs": 1,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ms|us|µs|h|m|s)")


class APIConfig(BaseModel):
    addr: str = ":8080"
    metrics_enabled: bool = True

    @property
    def host(self) -> str:
        host, _, _ = self.addr.rpartition(":")
        return host or "0.0.0.0"

    @property
    def port(self) -> int:
        _, _, port = self.addr.rpartition(":")
        return int(port)

class TrivyConfig(BaseModel):
    cache_dir: str = "/home/scanner/.cache/trivy"
    debug_mode: bool = False
    vuln_type: str = "os,library"
    security_checks: str = "vuln"
    severity: str = "UNKNOWN,LOW,MEDIUM,HIGH,CRITICAL"
    ignore_unfixed: bool = False
    skip_update: bool = False
    skip_java_db_update: bool = False
    offline_scan: bool = False
    github_token: str = ""
    insecure: bool = False
    timeout: timedelta = timedelta(minutes=5)

class RedisStoreConfig(BaseModel):
    redis_url: str = "redis://localhost:6379"
    namespace: str = "harbor.scanner.trivy:store"
    scan_job_ttl: timedelta = timedelta(hours=1)

class Config(BaseModel):
    log_level: str = "info"
    api: APIConfig = APIConfig()
    trivy: TrivyConfig = TrivyConfig()
    redis_store: RedisStoreConfig = RedisStoreConfig()

class BuildInfo(BaseModel):
    version: str = "dev"
    commit: str = "none"
    date: str = "unknown"


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration such as ``1h30m`` or ``2.5s``.

    Raises:
        ConfigError: If the value is not a valid duration
    """
    text = value.strip()
    if text in ("0", "-0", "+0"):
        return timedelta(0)

    sign = 1
    if text[:1] in ("-", "+"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    if not text:
        raise ConfigError(f"invalid duration: {value!r}")

    total_us = 0.0
    position = 0
    while position < len(text):
        match = _DURATION_PART.match(text, position)
        if not match:
            raise ConfigError(f"invalid duration: {value!r}")
        total_us += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    return timedelta(microseconds=sign * round(total_us))


def _trim_number(value: float) -> str:
    return f"{value:.6f}".rstrip("0").rstrip(".")


def format_duration(value: timedelta) -> str:
    """Render a duration the way the Trivy CLI prints it, e.g. ``5m0s``."""
    total_us = (value.days * 86400 + value.seconds) * 1_000_000 + value.microseconds
    if total_us == 0:
        return "0s"

    sign = "-" if total_us < 0 else ""
    total_us = abs(total_us)

    if total_us < 1000:
        return f"{sign}{total_us}µs"
    if total_us < 1_000_000:
        return f"{sign}{_trim_number(total_us / 1000)}ms"

    hours, rest = divmod(total_us, 3600 * 1_000_000)
    minutes, rest = divmod(rest, 60 * 1_000_000)

    text = sign
    if hours:
        text += f"{hours}h"
    if hours or minutes:
        text += f"{minutes}m"
    return f"{text}{_trim_number(rest / 1_000_000)}s"


def format_rfc3339(value: datetime) -> str:
    """Format a timestamp as RFC 3339 with second precision (``2024-01-02T03:04:05Z``)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.replace(microsecond=0).isoformat()
    if text.endswith("+00:00"):
        text = text[:-6] + "Z"
    return text


def format_bool(value: bool) -> str:
    return "true" if value else "false"


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    if raw.lower() in _TRUE_VALUES:
        return True
    if raw.lower() in _FALSE_VALUES:
        return False
    raise ConfigError(f"invalid boolean value for {name}: {raw!r}")


def _get_duration(name: str, default: timedelta) -> timedelta:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return parse_duration(raw)
    except ConfigError as e:
        raise ConfigError(f"invalid value for {name}", e)


def load_config() -> Config:
    """Read the adapter configuration from the environment."""
    defaults = Config()

    config = Config(
        log_level=os.getenv("SCANNER_LOG_LEVEL", defaults.log_level),
        api=APIConfig(
            addr=os.getenv("SCANNER_API_SERVER_ADDR", defaults.api.addr),
            metrics_enabled=_get_bool("SCANNER_API_METRICS_ENABLED", defaults.api.metrics_enabled),
        ),
        trivy=TrivyConfig(
            cache_dir=os.getenv("SCANNER_TRIVY_CACHE_DIR", defaults.trivy.cache_dir),
            debug_mode=_get_bool("SCANNER_TRIVY_DEBUG_MODE", defaults.trivy.debug_mode),
            vuln_type=os.getenv("SCANNER_TRIVY_VULN_TYPE", defaults.trivy.vuln_type),
            security_checks=os.getenv("SCANNER_TRIVY_SECURITY_CHECKS", defaults.trivy.security_checks),
            severity=os.getenv("SCANNER_TRIVY_SEVERITY", defaults.trivy.severity),
            ignore_unfixed=_get_bool("SCANNER_TRIVY_IGNORE_UNFIXED", defaults.trivy.ignore_unfixed),
            skip_update=_get_bool("SCANNER_TRIVY_SKIP_UPDATE", defaults.trivy.skip_update),
            skip_java_db_update=_get_bool("SCANNER_TRIVY_SKIP_JAVA_DB_UPDATE", defaults.trivy.skip_java_db_update),
            offline_scan=_get_bool("SCANNER_TRIVY_OFFLINE_SCAN", defaults.trivy.offline_scan),
            github_token=os.getenv("SCANNER_TRIVY_GITHUB_TOKEN", defaults.trivy.github_token),
            insecure=_get_bool("SCANNER_TRIVY_INSECURE", defaults.trivy.insecure),
            timeout=_get_duration("SCANNER_TRIVY_TIMEOUT", defaults.trivy.timeout),
        ),
        redis_store=RedisStoreConfig(
            redis_url=os.getenv("SCANNER_REDIS_URL", defaults.redis_store.redis_url),
            namespace=os.getenv("SCANNER_STORE_REDIS_NAMESPACE", defaults.redis_store.namespace),
            scan_job_ttl=_get_duration("SCANNER_STORE_REDIS_SCAN_JOB_TTL", defaults.redis_store.scan_job_ttl),
        ),
    )

    logger.debug(f"Loaded configuration: log_level={config.log_level}, api={config.api.addr}")
    return config


def get_build_info() -> BuildInfo:
    return BuildInfo(
        version=os.getenv("SCANNER_BUILD_VERSION", "dev"),
        commit=os.getenv("SCANNER_BUILD_COMMIT", "none"),
        date=os.getenv("SCANNER_BUILD_DATE", "unknown"),
    )


def get_scanner_metadata() -> Scanner:
    return Scanner(name="Trivy", vendor="Aqua Security", version=os.getenv("TRIVY_VERSION", "Unknown"))
