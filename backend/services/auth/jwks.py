"""Cached fetcher for a provider's published JSON Web Key Set."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

import httpx
import jwt

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 3600
DEFAULT_FETCH_TIMEOUT_SECONDS = 10.0
MIN_REFRESH_INTERVAL_SECONDS = 30


class KeyNotFoundError(jwt.PyJWTError):
    """No key in the published set matches the token's ``kid``."""


class RemoteKeySet:
    """Resolves signing keys from a remote JWKS endpoint.

    The set is cached for ``cache_ttl`` seconds. A token signed with an
    unknown ``kid`` triggers one early refetch so rotated keys are picked up,
    at most once every ``MIN_REFRESH_INTERVAL_SECONDS``. When a refetch fails
    the previous set keeps serving; with nothing cached the error propagates.
    """

    def __init__(
        self,
        url: str,
        *,
        cache_ttl: int = DEFAULT_CACHE_TTL_SECONDS,
        timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.url = url
        self.cache_ttl = cache_ttl
        self.timeout = timeout
        self._transport = transport
        self._monotonic = monotonic
        self._keys: dict[str, jwt.PyJWK] | None = None
        self._fetched_at = 0.0
        self._lock = asyncio.Lock()

    def _cache_age(self) -> float:
        return self._monotonic() - self._fetched_at

    async def _fetch(self) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(self.url)
            response.raise_for_status()
            return response.json()

    async def _refresh(self, *, force: bool) -> dict[str, jwt.PyJWK]:
        async with self._lock:
            if self._keys is not None:
                age = self._cache_age()
                if not force and age < self.cache_ttl:
                    return self._keys
                if force and age < MIN_REFRESH_INTERVAL_SECONDS:
                    return self._keys
            try:
                document = await self._fetch()
            except (httpx.HTTPError, ValueError) as exc:
                if self._keys is None:
                    raise
                logger.warning(
                    "Key set refresh failed, serving cached keys",
                    extra={"jwks_url": self.url},
                    exc_info=exc,
                )
                return self._keys

            keys = _index_keys(document)
            self._keys = keys
            self._fetched_at = self._monotonic()
            logger.info(
                "Key set refreshed",
                extra={"jwks_url": self.url, "keys_count": len(keys)},
            )
            return keys

    async def get_signing_key(self, kid: str) -> jwt.PyJWK:
        keys = await self._refresh(force=False)
        key = keys.get(kid)
        if key is None:
            keys = await self._refresh(force=True)
            key = keys.get(kid)
        if key is None:
            raise KeyNotFoundError(f"Signing key not found: {kid}")
        return key

    async def get_signing_key_from_jwt(self, token: str) -> jwt.PyJWK:
        header = jwt.get_unverified_header(token)
        kid = header.get("kid")
        if not kid:
            raise jwt.InvalidTokenError("Token header is missing a key id")
        return await self.get_signing_key(kid)

    def clear(self) -> None:
        self._keys = None
        self._fetched_at = 0.0


def _index_keys(document: dict[str, Any]) -> dict[str, jwt.PyJWK]:
    keys: dict[str, jwt.PyJWK] = {}
    for entry in document.get("keys", []):
        kid = entry.get("kid")
        if not kid or entry.get("use", "sig") != "sig":
            continue
        try:
            keys[kid] = jwt.PyJWK(entry)
        except jwt.PyJWTError as exc:
            logger.warning("Skipping unusable key", extra={"kid": kid}, exc_info=exc)
    return keys
