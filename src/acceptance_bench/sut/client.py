"""HTTP probe layer.

One method per capability exercised by the features. Every method returns
either a ProbeResponse or an Unreachable value. Network errors and timeouts
become Unreachable; any other httpx error (a URL without a scheme, a protocol
violation) is raised.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from acceptance_bench.bench.types import ProbeEvent, ProbeResponse, ProbeResult, SUTContext, TestUser, Unreachable

logger = logging.getLogger(__name__)

EventRecorder = Callable[[ProbeEvent], None]


class ProbeClient:
    def __init__(
        self,
        sut: SUTContext,
        http: Optional[httpx.Client] = None,
        recorder: Optional[EventRecorder] = None,
    ) -> None:
        self.sut = sut
        self.http = http or httpx.Client(timeout=sut.timeout, verify=sut.verify_tls)
        self.recorder = recorder

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> "ProbeClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ---- user API (auth service) ----

    def register(self, user: TestUser) -> ProbeResult:
        return self._send("POST", self.sut.user_api_url, "/usuarios", endpoint="auth.register",
                          json=user.registration_payload())

    def login(self, username: str, password: str) -> ProbeResult:
        return self._send("POST", self.sut.user_api_url, "/sesiones", endpoint="auth.login",
                          json={"usuario": username, "clave": password})

    def request_recovery_code(self, username: str) -> ProbeResult:
        return self._send("POST", self.sut.user_api_url, "/codigos", endpoint="auth.recovery_code",
                          json={"usuario": username})

    def list_users(self, token: Optional[str], page: int) -> ProbeResult:
        return self._send("GET", self.sut.user_api_url, "/usuarios", endpoint="auth.list_users",
                          token=token, params={"page": page})

    def delete_user(self, token: Optional[str], username: str) -> ProbeResult:
        return self._send("DELETE", self.sut.user_api_url, f"/usuarios/{username}", endpoint="auth.delete_user",
                          token=token)

    # ---- gateway ----

    def register_via_gateway(self, user: TestUser) -> ProbeResult:
        return self._send("POST", self.sut.api_gateway_url, "/api/v1/auth/register", endpoint="gateway.register",
                          json=user.gateway_payload())

    # ---- health / observability ----

    def health(self, base_uri: str, path: str, endpoint: str = "health") -> ProbeResult:
        return self._send("GET", base_uri, path, endpoint=endpoint)

    def global_health(self) -> ProbeResult:
        return self._send("GET", self.sut.health_check_url, "/health", endpoint="monitor.global_health")

    def log_backend_ready(self) -> ProbeResult:
        return self._send("GET", self.sut.log_backend_url, "/ready", endpoint="logs.ready")

    # ---- transport ----

    def _send(
        self,
        method: str,
        base: str,
        path: str,
        endpoint: str,
        token: Optional[str] = None,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> ProbeResult:
        url = base.rstrip("/") + path
        headers = {"Accept": "application/json"}
        # a blank token means "not logged in": send no Authorization header at all
        if token:
            headers["Authorization"] = f"Bearer {token}"

        started = time.perf_counter()
        try:
            resp = self.http.request(method, url, headers=headers, json=json, params=params)
        except (httpx.NetworkError, httpx.TimeoutException) as exc:
            self._record(method, endpoint, None, started)
            logger.warning("%s %s unreachable: %s", method, url, exc)
            return Unreachable(url=url, reason=f"{type(exc).__name__}: {exc}")

        self._record(method, endpoint, resp.status_code, started)
        logger.debug("%s %s -> %s", method, url, resp.status_code)
        return ProbeResponse(
            status_code=resp.status_code,
            body=resp.content,
            headers=dict(resp.headers),
            url=str(resp.request.url),
        )

    def _record(self, method: str, endpoint: str, status: Optional[int], started: float) -> None:
        if self.recorder is None:
            return
        duration_ms = (time.perf_counter() - started) * 1000.0
        self.recorder(ProbeEvent(method=method, endpoint=endpoint, status_code=status, duration_ms=duration_ms))
