import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import httpx
import yaml

from acceptance_bench.bench.errors import ConfigError
from acceptance_bench.bench.types import AdminBootstrap, LogSettleStrategy, SUTContext

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV = "ACCEPTANCE_CONFIG"

# env var -> (SUTContext field, default)
SERVICE_URLS = {
    "API_GATEWAY_URL": ("api_gateway_url", "http://localhost:8085"),
    "GESTION_PERFIL_URL": ("profile_url", "http://localhost:8084"),
    "JWT_SERVICE_URL": ("jwt_service_url", "http://localhost:8081"),
    "NOTIFICATIONS_URL": ("notifications_url", "http://localhost:8080"),
    "ORQUESTADOR_URL": ("orchestrator_url", "http://localhost:3001"),
    "HEALTH_CHECK_URL": ("health_check_url", "http://localhost:8082"),
    "LOKI_URL": ("log_backend_url", "http://localhost:3100"),
}

_BOOL_TRUE = {"true", "1", "yes", "y", "on"}
_BOOL_FALSE = {"false", "0", "no", "n", "off"}


def property_name(env_var: str) -> str:
    """API_GATEWAY_URL -> api.gateway.url (the -D userdata spelling)."""
    return env_var.lower().replace("_", ".")


def _http_url(name: str, raw: str) -> str:
    try:
        url = httpx.URL(raw)
    except httpx.InvalidURL as exc:
        raise ConfigError(f"Invalid {name}={raw!r}: {exc}") from None
    if url.scheme not in ("http", "https") or not url.host:
        raise ConfigError(f"Invalid {name}={raw!r}; expected an http:// or https:// URL with a host")
    return raw.rstrip("/")


def load_config_file(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")
    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {p} must contain a mapping at the top level")
    # keys in the file may use either spelling
    return {str(k).upper().replace(".", "_"): v for k, v in data.items()}


class SUTFactory:
    """Resolves every setting from env vars, then behave userdata, then the YAML file, then defaults."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None, userdata: Optional[Mapping[str, str]] = None):
        self.environ = os.environ if environ is None else environ
        self.userdata = userdata or {}
        self.file_values = load_config_file(self.environ.get(CONFIG_FILE_ENV) or self.userdata.get(property_name(CONFIG_FILE_ENV)))
        self.sources: Dict[str, str] = {}

    def resolve(self, env_var: str, default: Optional[str]) -> Optional[str]:
        value, source = self._lookup(env_var)
        if value is None:
            value, source = default, "default"
        self.sources[env_var] = source
        return value

    def _lookup(self, env_var: str) -> Tuple[Optional[str], str]:
        val = self.environ.get(env_var)
        if val:
            return val, "env"
        val = self.userdata.get(property_name(env_var))
        if val:
            return val, "userdata"
        val = self.file_values.get(env_var)
        if val is not None and str(val) != "":
            return str(val), "file"
        return None, "default"

    def build(self) -> SUTContext:
        urls = {}
        for env_var, (field_name, default) in SERVICE_URLS.items():
            urls[field_name] = _http_url(env_var, self.resolve(env_var, default))

        # userdata baseUrl/basePath mirror the property overrides used for the user API
        base_url = _http_url("baseUrl", self.userdata.get("baseUrl") or urls["jwt_service_url"])
        base_path = self.userdata.get("basePath", "/v1")
        if base_path and not base_path.startswith("/"):
            base_path = "/" + base_path
        user_api_url = base_url + base_path.rstrip("/")

        report_path = self.resolve("REPORT_PATH", "reports/acceptance-report.json")

        ctx = SUTContext(
            user_api_url=user_api_url,
            admin_username=self.resolve("ADMIN_USERNAME", "admin"),
            admin_password=self.resolve("ADMIN_PASSWORD", "admin123"),
            admin_bootstrap=self._enum("ADMIN_BOOTSTRAP", AdminBootstrap, AdminBootstrap.SEEDED),
            timeout=self._float("HTTP_TIMEOUT_SECONDS", 10.0, positive=True),
            verify_tls=self._bool("HTTP_VERIFY_TLS", True),
            log_settle_strategy=self._enum("LOG_SETTLE_STRATEGY", LogSettleStrategy, LogSettleStrategy.SLEEP),
            log_settle_seconds=self._float("LOG_SETTLE_SECONDS", 2.0),
            log_poll_interval=self._float("LOG_POLL_INTERVAL", 0.25, positive=True),
            report_path=report_path or None,
            report_console=self._bool("REPORT_CONSOLE", False),
            env=self._snapshot(urls, user_api_url),
            **urls,
        )
        logger.debug("Resolved SUT context: %s", ctx.env)
        return ctx

    def _enum(self, env_var, enum_cls, default):
        raw = self.resolve(env_var, default.value)
        try:
            return enum_cls(str(raw).strip().lower())
        except ValueError:
            allowed = ", ".join(e.value for e in enum_cls)
            raise ConfigError(f"Invalid {env_var}={raw!r}; expected one of: {allowed}") from None

    def _float(self, env_var: str, default: float, positive: bool = False) -> float:
        raw = self.resolve(env_var, str(default))
        try:
            value = float(raw)
        except (TypeError, ValueError):
            raise ConfigError(f"Invalid {env_var}={raw!r}; expected a number") from None
        if value < 0:
            raise ConfigError(f"Invalid {env_var}={raw!r}; must not be negative")
        if positive and value == 0:
            raise ConfigError(f"Invalid {env_var}={raw!r}; must be greater than 0")
        return value

    def _bool(self, env_var: str, default: bool) -> bool:
        raw = str(self.resolve(env_var, "true" if default else "false")).strip().lower()
        if raw in _BOOL_TRUE:
            return True
        if raw in _BOOL_FALSE:
            return False
        raise ConfigError(f"Invalid {env_var}={raw!r}; expected a boolean")

    def _snapshot(self, urls: Dict[str, str], user_api_url: str) -> Dict[str, Any]:
        snapshot: Dict[str, Any] = {env_var: urls[field_name] for env_var, (field_name, _) in SERVICE_URLS.items()}
        snapshot["USER_API_URL"] = user_api_url
        snapshot["ADMIN_PASSWORD"] = "***"
        snapshot["sources"] = dict(self.sources)
        return snapshot
