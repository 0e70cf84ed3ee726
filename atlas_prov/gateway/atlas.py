"""Thin HTTP client for the Atlas Admin API (v2).

Wraps a :class:`requests.Session` with HTTP digest authentication, the
versioned ``Accept`` header, and translation of every non-2xx response (or
transport failure) into :class:`~atlas_prov.gateway.errors.ApiError`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests
from requests.auth import HTTPDigestAuth

from atlas_prov.config.models import AtlasApiConfig
from atlas_prov.gateway.errors import TRANSPORT_FAILURE, ApiError

logger = logging.getLogger(__name__)


class AtlasClient:
    """Authenticated Atlas Admin API session."""

    def __init__(
        self,
        public_key: str,
        private_key: str,
        config: Optional[AtlasApiConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config or AtlasApiConfig()
        self.base_url = self.config.base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.auth = HTTPDigestAuth(public_key, private_key)
        self.session.headers.update(self._create_headers())

    def close(self) -> None:
        self.session.close()

    # -- core ---------------------------------------------------------------

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> Dict[str, Any]:
        """Issue one request and return the decoded JSON body (``{}`` if empty).

        Raises :class:`ApiError` for non-2xx responses and transport errors.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        logger.debug("Atlas %s %s params=%s", method, url, params)
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json,
                timeout=self.config.request_timeout_seconds,
            )
        except requests.RequestException as exc:
            raise ApiError(TRANSPORT_FAILURE, f"Atlas request failed: {exc}") from exc

        if not response.ok:
            raise _error_from_response(method, url, response)

        if response.status_code == 204 or not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise ApiError(
                response.status_code,
                f"Atlas returned a non-JSON body for {method} {url}",
            ) from exc
        return body if isinstance(body, dict) else {"results": body}

    def get(self, path: str, **params: Any) -> Dict[str, Any]:
        return self.request("GET", path, params=params or None)

    def post(self, path: str, body: Any = None) -> Dict[str, Any]:
        return self.request("POST", path, json=body if body is not None else {})

    def patch(self, path: str, body: Any) -> Dict[str, Any]:
        return self.request("PATCH", path, json=body)

    def delete(self, path: str) -> Dict[str, Any]:
        return self.request("DELETE", path)

    def paginate(self, path: str, **params: Any) -> List[Dict[str, Any]]:
        """Collect ``results`` across all pages of a list endpoint."""
        page_size = self.config.page_size
        page = 1
        items: List[Dict[str, Any]] = []
        while True:
            body = self.get(path, itemsPerPage=page_size, pageNum=page, **params)
            results = body.get("results") or []
            items.extend(results)
            total = body.get("totalCount")
            if not results or len(results) < page_size:
                break
            if total is not None and len(items) >= int(total):
                break
            page += 1
        return items

    # -- internals ----------------------------------------------------------

    def _create_headers(self) -> Dict[str, str]:
        return {
            "Accept": self.config.accept_header,
            "Content-Type": self.config.accept_header,
            "User-Agent": self.config.user_agent,
        }


def _error_from_response(method: str, url: str, response: requests.Response) -> ApiError:
    """Build an :class:`ApiError` from an Atlas error payload.

    Atlas errors look like
    ``{"error": 404, "errorCode": "CLUSTER_NOT_FOUND", "detail": "..."}``.
    """
    detail = ""
    error_code = None
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        detail = payload.get("detail") or payload.get("reason") or ""
        error_code = payload.get("errorCode")
    if not detail:
        detail = response.text or response.reason or "no detail"
    logger.debug(
        "Atlas %s %s -> %s %s", method, url, response.status_code, error_code
    )
    return ApiError(response.status_code, f"{method} {url}: {detail}", error_code)
