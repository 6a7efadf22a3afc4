# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Synchronous client for the serving HTTP API.

Endpoints are ``host:port`` strings; one client talks to every instance.
Transport errors are converted into None/False returns except for
:meth:`ServingClient.list_models`, whose callers distinguish "unreachable"
from "empty".
"""

import logging
from typing import Any

import httpx
import orjson

logger = logging.getLogger(__name__)

__all__ = ["ServingClient"]


class ServingClient:
    """Thin wrapper over the tags, generate, create, delete, pull and show calls."""

    def __init__(self, tags_timeout: float = 10.0, transport: httpx.BaseTransport | None = None):
        self.tags_timeout = tags_timeout
        self._client = httpx.Client(transport=transport)

    def __enter__(self) -> "ServingClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _url(endpoint: str, path: str) -> str:
        return f"http://{endpoint}{path}"

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        """Decode a JSON body, taking the last object of a streamed NDJSON body."""
        if not response.content.strip():
            return {}
        try:
            data = orjson.loads(response.content)
        except orjson.JSONDecodeError:
            lines = [line for line in response.content.splitlines() if line.strip()]
            try:
                data = orjson.loads(lines[-1])
            except orjson.JSONDecodeError:
                return {}
        return data if isinstance(data, dict) else {}

    def list_models(self, endpoint: str, timeout: float | None = None) -> list[str]:
        """Return model tags served by the endpoint.

        Raises:
            httpx.HTTPError: If the endpoint is unreachable or answers with an error
        """
        response = self._client.get(
            self._url(endpoint, "/api/tags"), timeout=timeout or self.tags_timeout
        )
        response.raise_for_status()
        return [m.get("name", "") for m in self._decode(response).get("models", []) if m.get("name")]

    def is_alive(self, endpoint: str, timeout: float = 2.0) -> bool:
        try:
            self.list_models(endpoint, timeout=timeout)
        except httpx.HTTPError:
            return False
        return True

    def generate(self, endpoint: str, payload: dict[str, Any], timeout: float) -> dict[str, Any] | None:
        """Send one generation request.

        Returns:
            The final response object (possibly empty or an error body), or
            None when no response arrived at all
        """
        try:
            response = self._client.post(
                self._url(endpoint, "/api/generate"), json=payload, timeout=timeout
            )
        except httpx.TimeoutException:
            logger.warning(f"Generate on {endpoint} timed out after {timeout}s")
            return None
        except httpx.HTTPError as e:
            logger.warning(f"Generate on {endpoint} failed: {e}")
            return None

        if response.status_code >= 400:
            logger.warning(
                f"Generate on {endpoint} returned HTTP {response.status_code}: {response.text[:200]}"
            )
        return self._decode(response)

    def create(
        self,
        endpoint: str,
        name: str,
        base: str,
        parameters: dict[str, Any],
        timeout: float = 600.0,
    ) -> tuple[bool, str]:
        """Create a derived model from ``base`` with overridden parameters.

        Returns:
            (success, detail) where detail is the server's response text or error
        """
        body = {"model": name, "from": base, "parameters": parameters, "stream": False}
        try:
            response = self._client.post(self._url(endpoint, "/api/create"), json=body, timeout=timeout)
        except httpx.HTTPError as e:
            return False, f"{type(e).__name__}: {e}"

        detail = response.text.strip()
        if response.status_code != 200 or "error" in self._decode(response):
            return False, f"HTTP {response.status_code}: {detail}"
        return True, detail

    def delete(self, endpoint: str, name: str, timeout: float = 30.0) -> bool:
        try:
            response = self._client.request(
                "DELETE", self._url(endpoint, "/api/delete"), json={"model": name}, timeout=timeout
            )
        except httpx.HTTPError as e:
            logger.warning(f"Delete of {name} on {endpoint} failed: {e}")
            return False
        if response.status_code != 200:
            logger.debug(f"Delete of {name} on {endpoint} returned HTTP {response.status_code}")
            return False
        return True

    def pull(self, endpoint: str, name: str, timeout: float = 1800.0) -> bool:
        try:
            response = self._client.post(
                self._url(endpoint, "/api/pull"),
                json={"model": name, "stream": False},
                timeout=timeout,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Pull of {name} via {endpoint} failed: {e}")
            return False
        if response.status_code != 200 or "error" in self._decode(response):
            logger.warning(f"Pull of {name} via {endpoint} failed: {response.text[:200]}")
            return False
        return True

    def show(self, endpoint: str, name: str, timeout: float | None = None) -> dict[str, Any] | None:
        try:
            response = self._client.post(
                self._url(endpoint, "/api/show"),
                json={"model": name},
                timeout=timeout or self.tags_timeout,
            )
        except httpx.HTTPError as e:
            logger.debug(f"Show of {name} on {endpoint} failed: {e}")
            return None
        if response.status_code != 200:
            return None
        return self._decode(response)
