"""
HTTP client for the remote save store.

  GET  /api/saves/latest  -> 200 GameState | 404 no save | 401 session invalid
  POST /api/saves         -> 200 {success, timestamp} | 400 invalid | 401

Any ``httpx.Client`` works as transport; tests hand in FastAPI's TestClient so
the client talks to the real routes in-process.
"""

import logging
import os
from typing import Any, Dict, Optional

import httpx

from save_errors import AuthError, SaveValidationError, TransientNetworkError

SAVE_API_BASE_URL = os.environ.get("SAVE_API_BASE_URL", "http://127.0.0.1:8000")
SAVE_API_TIMEOUT_S = float(os.environ.get("SAVE_API_TIMEOUT_S", "10"))

LATEST_SAVE_PATH = "/api/saves/latest"
SYNC_SAVE_PATH = "/api/saves"


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("message") or body)
    return str(body)


class RemoteSaveStore:
    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        *,
        base_url: str = SAVE_API_BASE_URL,
        timeout_s: float = SAVE_API_TIMEOUT_S,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout_s)

    def fetch_latest(self) -> Optional[Dict[str, Any]]:
        """Return the stored payload, or None when the user has no save yet."""
        try:
            response = self._client.get(LATEST_SAVE_PATH)
        except httpx.HTTPError as exc:
            raise TransientNetworkError(f"Could not reach save store: {exc}") from exc

        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        try:
            body = response.json()
        except ValueError as exc:
            raise TransientNetworkError("Save store returned a non-JSON body", response.status_code) from exc
        if not isinstance(body, dict):
            raise TransientNetworkError("Save store returned an unexpected body", response.status_code)
        return body

    def push(self, payload: Dict[str, Any], *, timeout_s: Optional[float] = None) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"json": payload}
        if timeout_s is not None:
            kwargs["timeout"] = timeout_s
        try:
            response = self._client.post(SYNC_SAVE_PATH, **kwargs)
        except httpx.HTTPError as exc:
            raise TransientNetworkError(f"Could not reach save store: {exc}") from exc

        if response.status_code == 400:
            raise SaveValidationError(_error_detail(response))
        self._raise_for_status(response)
        try:
            return response.json()
        except ValueError:
            logging.warning("Save store acknowledged a write with a non-JSON body")
            return {"success": True}

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code == 401:
            raise AuthError(_error_detail(response) or "Authentication required")
        if response.status_code >= 400:
            raise TransientNetworkError(
                f"Save store error {response.status_code}: {_error_detail(response)}",
                response.status_code,
            )
