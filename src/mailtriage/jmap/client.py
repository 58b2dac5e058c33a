"""Base JMAP client for the Fastmail API.

Wraps a `requests.Session` with bearer-token auth, session discovery and
method-call batching. Calls are made exactly once: a non-success HTTP status
or a JMAP method error raises RemoteCallError and is never retried.

Usage:
    from mailtriage.jmap.client import JMAPClient

    client = JMAPClient(token)
    mailboxes = client.call("Mailbox/get", {"accountId": client.account_id})
"""

from typing import Any

import requests

from mailtriage.core.errors import RemoteCallError
from mailtriage.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SESSION_URL = "https://api.fastmail.com/jmap/session"

JMAP_CORE = "urn:ietf:params:jmap:core"
JMAP_MAIL = "urn:ietf:params:jmap:mail"
DEFAULT_CAPABILITIES = [JMAP_CORE, JMAP_MAIL]


class JMAPClient:
    """Minimal JMAP (RFC 8620) client.

    The session resource is fetched lazily on first use and cached; it
    provides the API URL and the primary mail account id.

    Attributes:
        session_url: URL of the JMAP session resource
        api_url: Method-call endpoint (from the session unless overridden)
        timeout: HTTP timeout in seconds, or None to wait indefinitely
    """

    def __init__(
        self,
        token: str,
        session_url: str = DEFAULT_SESSION_URL,
        api_url: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.session_url = session_url
        self.timeout = timeout
        self._api_url_override = api_url
        self._session_data: dict[str, Any] | None = None

        self.http = session or requests.Session()
        self.http.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            }
        )

    # ------------------------------------------------------------------
    # Session discovery
    # ------------------------------------------------------------------

    def get_session(self, force_refresh: bool = False) -> dict[str, Any]:
        """Fetch (and cache) the JMAP session resource.

        Raises:
            RemoteCallError: If the session request fails
        """
        if self._session_data is not None and not force_refresh:
            return self._session_data

        logger.debug("Fetching JMAP session", url=self.session_url)
        response = self._send("GET", self.session_url)
        data = self._decode(response, self.session_url)

        if JMAP_MAIL not in (data.get("primaryAccounts") or {}):
            raise RemoteCallError(
                "JMAP session has no primary mail account. "
                "Check that the API token grants mail access.",
                status_code=response.status_code,
            )

        self._session_data = data
        logger.info(
            "JMAP session established",
            username=data.get("username"),
            api_url=self.api_url,
        )
        return data

    @property
    def account_id(self) -> str:
        """Primary mail account id from the session."""
        return self.get_session()["primaryAccounts"][JMAP_MAIL]

    @property
    def api_url(self) -> str:
        if self._api_url_override:
            return self._api_url_override
        return self.get_session()["apiUrl"]

    # ------------------------------------------------------------------
    # Method calls
    # ------------------------------------------------------------------

    def request(
        self,
        method_calls: list[list[Any]],
        using: list[str] | None = None,
    ) -> list[list[Any]]:
        """Send a batch of method calls and return methodResponses.

        Args:
            method_calls: ``[name, arguments, callId]`` triples
            using: Capabilities (defaults to core + mail)

        Raises:
            RemoteCallError: On HTTP failure or any method-level error
        """
        payload = {"using": using or DEFAULT_CAPABILITIES, "methodCalls": method_calls}

        logger.debug(
            "JMAP request",
            methods=[call[0] for call in method_calls],
        )

        url = self.api_url
        response = self._send("POST", url, json=payload)
        data = self._decode(response, url)

        responses = data.get("methodResponses")
        if not isinstance(responses, list):
            raise RemoteCallError(
                "JMAP response has no methodResponses",
                status_code=response.status_code,
            )

        for name, arguments, call_id in responses:
            if name == "error":
                error_type = arguments.get("type", "unknown")
                logger.error(
                    "JMAP method error",
                    call_id=call_id,
                    error_type=error_type,
                    description=arguments.get("description"),
                )
                raise RemoteCallError(
                    f"JMAP method call '{call_id}' failed: {error_type}"
                    + (f" ({arguments['description']})" if arguments.get("description") else ""),
                    status_code=response.status_code,
                    error_type=error_type,
                )

        return responses

    def call(self, method: str, arguments: dict[str, Any], call_id: str = "0") -> dict[str, Any]:
        """Send a single method call and return its response arguments."""
        responses = self.request([[method, arguments, call_id]])
        return responses[0][1]

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            return self.http.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise RemoteCallError(
                f"Connection to JMAP server failed ({method} {url}): {e}"
            ) from e

    def _decode(self, response: requests.Response, url: str) -> dict[str, Any]:
        if not response.ok:
            logger.error(
                "JMAP HTTP error",
                url=url,
                status_code=response.status_code,
                reason=response.reason,
            )
            hint = ""
            if response.status_code in (401, 403):
                hint = " Check the API token for this user."
            raise RemoteCallError(
                f"JMAP request failed: {response.status_code} {response.reason}.{hint}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise RemoteCallError(
                f"JMAP server returned invalid JSON from {url}",
                status_code=response.status_code,
            ) from e
