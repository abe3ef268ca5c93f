import json
import logging
from pathlib import Path
from typing import Any

import requests

from ..config import Config
from ..errors import RemoteError

logger = logging.getLogger(__name__)

# (connect, read) seconds; exports with deep references can be slow
_TIMEOUT = (10, 300)


def is_error_envelope(body: Any) -> bool:
    """Return True if a decoded response is a Kibana error envelope.

    An envelope is recognised by an integer ``statusCode``; a bundle or
    import result never carries one, whatever other keys are present.
    """
    if not isinstance(body, dict):
        return False
    status = body.get("statusCode")
    return isinstance(status, int) and not isinstance(status, bool)


def envelope_error(body: dict[str, Any], raw: str | None = None) -> RemoteError:
    """Build a ``RemoteError`` carrying the envelope fields verbatim."""
    return RemoteError(
        str(body.get("message") or "request failed"),
        status_code=body["statusCode"],
        error=body.get("error"),
        raw=raw,
    )


class KibanaClient:
    def __init__(self, config: Config):
        self.config = config
        self.base_url = config.kibana_url.rstrip("/")
        self._session: requests.Session | None = None

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = self._create_session()
        return self._session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.verify = not self.config.insecure
        session.headers["kbn-xsrf"] = "true"
        auth = self.config.auth_header()
        if auth is not None:
            session.headers["Authorization"] = auth
        return session

    def space_url(self, path: str) -> str:
        """URL of a space-scoped API path."""
        return f"{self.base_url}/s/{self.config.space}{path}"

    def _request(self, method: str, url: str, **kwargs) -> str:
        """
        Send one request and return the response body.

        Kibana answers most failures with a JSON error envelope, which is
        returned as-is so callers can classify it.  Any other body with a
        failing status, or a transport error, raises ``RemoteError``.
        """
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(
                method, url, timeout=_TIMEOUT, **kwargs
            )
        except requests.RequestException as e:
            raise RemoteError(f"Request to {url} failed: {e}") from e

        text = response.text
        if response.status_code < 400:
            return text

        try:
            body = json.loads(text)
        except ValueError:
            body = None
        if is_error_envelope(body):
            return text

        detail = body if isinstance(body, dict) else {}
        raise RemoteError(
            str(
                detail.get("message")
                or f"Kibana returned HTTP {response.status_code} for {url}"
            ),
            status_code=response.status_code,
            error=detail.get("error"),
            raw=text,
        )

    def export_objects(self, body: dict[str, Any]) -> str:
        """
        Export saved objects as an NDJSON bundle.

        Args:
            body: Export request, e.g. ``{"objects": [...],
                "excludeExportDetails": true, "includeReferencesDeep": true}``

        Returns:
            Raw response body: NDJSON on success, an error envelope otherwise.
        """
        return self._request(
            "POST",
            self.space_url("/api/saved_objects/_export"),
            json=body,
        )

    def import_bundle(self, bundle_path: Path) -> str:
        """
        Import an NDJSON bundle, overwriting existing objects.

        Returns:
            Raw JSON response body (``{"success": ..., "successCount": ...}``).
        """
        with open(bundle_path, "rb") as fh:
            return self._request(
                "POST",
                self.space_url("/api/saved_objects/_import"),
                params={"overwrite": "true"},
                files={"file": (bundle_path.name, fh, "application/ndjson")},
            )

    def get_space(self, space_id: str | None = None) -> dict[str, Any]:
        """
        Fetch a space definition.

        Raises:
            RemoteError: If Kibana returns an error envelope or non-JSON.
        """
        space_id = space_id or self.config.space
        text = self._request(
            "GET", f"{self.base_url}/api/spaces/space/{space_id}"
        )
        try:
            data = json.loads(text)
        except ValueError:
            raise RemoteError(
                f"Unexpected response for space '{space_id}'", raw=text
            ) from None
        if not isinstance(data, dict):
            raise RemoteError(
                f"Unexpected response for space '{space_id}'", raw=text
            )
        if is_error_envelope(data):
            raise envelope_error(data, raw=text)
        return data
