from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Tuple

from acceptance_bench.bench.errors import AuthError, AuthErrorKind, ServiceUnreachable
from acceptance_bench.bench.types import AdminBootstrap, ProbeResponse, Role, SessionToken, TestUser, Unreachable

logger = logging.getLogger(__name__)

TokenExtractor = Callable[[Any], Optional[str]]


def _path_extractor(*path: str) -> TokenExtractor:
    def extract(body: Any) -> Optional[str]:
        node = body
        for key in path:
            if not isinstance(node, dict):
                return None
            node = node.get(key)
        if isinstance(node, str) and node.strip():
            return node
        return None

    extract.__name__ = "extract_" + "_".join(path)
    return extract


# Tried in order; the first strategy that yields a non-blank token wins.
TOKEN_EXTRACTORS: Tuple[TokenExtractor, ...] = (
    _path_extractor("respuesta", "token"),
    _path_extractor("token"),
)


def extract_token(body: Any) -> Optional[str]:
    for extractor in TOKEN_EXTRACTORS:
        token = extractor(body)
        if token is not None:
            return token
    return None


class SessionManager:
    def __init__(self, client) -> None:
        self.client = client

    def login(self, username: str, password: str, role: Role = Role.USER) -> SessionToken:
        result = self.client.login(username, password)
        response = _require_response(result)
        if response.status_code != 200:
            raise AuthError(
                AuthErrorKind.INVALID_CREDENTIALS,
                f"Login for '{username}' returned HTTP {response.status_code}: {response.excerpt()}",
                status_code=response.status_code,
            )
        token = extract_token(response.json_or_none())
        if token is None:
            raise AuthError(
                AuthErrorKind.MALFORMED_RESPONSE,
                f"Login for '{username}' returned 200 without 'respuesta.token' or 'token': {response.excerpt()}",
                status_code=200,
            )
        return SessionToken(subject=username, token=token, issued_for=role)

    def login_user(self, user: TestUser) -> SessionToken:
        return self.login(user.username, user.password, role=user.role)

    def login_as_admin(self) -> SessionToken:
        sut = self.client.sut
        try:
            return self.login(sut.admin_username, sut.admin_password, role=Role.ADMIN)
        except AuthError as exc:
            if sut.admin_bootstrap is not AdminBootstrap.REGISTER or exc.kind is not AuthErrorKind.INVALID_CREDENTIALS:
                raise
            logger.warning("Admin login failed (%s); registering '%s' and retrying once", exc, sut.admin_username)

        admin = TestUser(
            username=sut.admin_username,
            email=f"{sut.admin_username}@example.com",
            phone="3000000000",
            password=sut.admin_password,
            role=Role.ADMIN,
        )
        registered = _require_response(self.client.register(admin))
        logger.info("Admin registration returned HTTP %s", registered.status_code)
        return self.login(sut.admin_username, sut.admin_password, role=Role.ADMIN)


def _require_response(result) -> ProbeResponse:
    if isinstance(result, Unreachable):
        raise ServiceUnreachable(result.url, result.reason)
    return result
