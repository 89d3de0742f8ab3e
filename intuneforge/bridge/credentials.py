"""Credential bridge — bearer token suppliers for the management API.

Token acquisition itself (interactive login, client credentials, managed
identity) lives outside this package.  The pipeline asks a
``TokenSupplier`` for a token before every request; a pre-obtained token
string bypasses acquisition entirely.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from intuneforge.core.errors import AuthFailedError

logger = logging.getLogger(__name__)

GRAPH_DEFAULT_SCOPE = "https://graph.microsoft.com/.default"


@runtime_checkable
class TokenSupplier(Protocol):
    """Produces a bearer token for the management API."""

    async def get_token(self) -> str: ...


class StaticTokenSupplier:
    """Hands out a token that was obtained elsewhere."""

    def __init__(self, token: str) -> None:
        if not token:
            raise AuthFailedError("A static token supplier needs a non-empty token")
        self._token = token

    async def get_token(self) -> str:
        return self._token

    def __repr__(self) -> str:
        return "StaticTokenSupplier(token=***)"


class CallableTokenSupplier:
    """Adapts a sync or async callable to ``TokenSupplier``.

    The callable receives the requested scope.  Any exception it raises,
    or an empty token, is reported as ``AuthFailedError``.
    """

    def __init__(
        self,
        fn: Callable[[str], str] | Callable[[str], Awaitable[str]],
        *,
        scope: str = GRAPH_DEFAULT_SCOPE,
    ) -> None:
        self._fn = fn
        self._scope = scope

    async def get_token(self) -> str:
        try:
            result = self._fn(self._scope)
            if inspect.isawaitable(result):
                result = await result
        except AuthFailedError:
            raise
        except Exception as exc:
            logger.error("Token acquisition failed: %s", exc)
            raise AuthFailedError(f"Token acquisition failed: {exc}") from exc

        if not result:
            raise AuthFailedError("Token supplier returned an empty token")
        return result


def supplier_for(
    token: str | None = None,
    fn: Callable[[str], str] | Callable[[str], Awaitable[str]] | None = None,
) -> TokenSupplier:
    """Pick a supplier: a static token wins over a callable."""
    if token:
        return StaticTokenSupplier(token)
    if fn is not None:
        return CallableTokenSupplier(fn)
    raise AuthFailedError("No token and no token supplier configured")
