"""HTTP client for the InoReader / Google Reader API."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from ..core.actions import PendingAction
from ..core.errors import AuthExpired, AuthRejected, EditRejected, NetworkFailure
from ..core.nodes import normalize_source
from ..utils.http import create_session


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.inoreader.com"

LOGIN_PATH = "/accounts/ClientLogin"
SUBSCRIPTION_LIST_PATH = "/reader/api/0/subscription/list"
UNREAD_COUNTS_PATH = "/reader/api/0/unread-count"
TOKEN_PATH = "/reader/api/0/token"
SUBSCRIPTION_EDIT_PATH = "/reader/api/0/subscription/edit"
EDIT_TAG_PATH = "/reader/api/0/edit-tag"

CLIENT_NAME = "reader-sync"


@dataclass
class Subscription:
    """One entry of the remote subscription list."""

    id: str
    url: str
    title: str = ""
    timestamp: int = 0


@dataclass
class UnreadCount:
    """Unread counter and newest item time of one stream."""

    id: str
    count: int = 0
    timestamp: int = 0


def _usec_to_seconds(value: Any) -> int:
    try:
        return int(value) // 1_000_000
    except (TypeError, ValueError):
        return 0


class ReaderClient:
    """Talks to the reader API; every call blocks until the response arrives.

    Authenticated calls take the Authorization header value so the client
    holds no login state of its own.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        app_id: Optional[str] = None,
        app_key: Optional[str] = None,
        timeout: int = 30,
        retry_attempts: int = 3,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or create_session(retry_attempts)
        if app_id and app_key:
            self.session.headers.update({"AppId": app_id, "AppKey": app_key})

    def _request(
        self,
        method: str,
        path: str,
        auth_header: Optional[str] = None,
        params: Optional[Dict[str, str]] = None,
        data: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        url = self.base_url + path
        headers = {"Authorization": auth_header} if auth_header else None
        query = {"client": CLIENT_NAME}
        query.update(params or {})

        try:
            response = self.session.request(
                method, url, params=query, data=data, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise NetworkFailure(f"{method} {path} failed: {e}") from e

        if response.status_code in (401, 403):
            if path == LOGIN_PATH:
                raise AuthRejected(f"Login rejected ({response.status_code})")
            raise AuthExpired(f"{method} {path} returned {response.status_code}")

        if response.status_code != 200:
            raise NetworkFailure(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def _json(self, response: requests.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as e:
            raise NetworkFailure(f"Invalid JSON from {response.url}: {e}") from e
        if not isinstance(payload, dict):
            raise NetworkFailure(f"Unexpected payload from {response.url}")
        return payload

    def login(self, email: str, password: str) -> str:
        """
        Log in with account credentials.

        Args:
            email: Account email
            password: Account password

        Returns:
            Authorization token from the ``Auth=`` line of the response

        Raises:
            AuthRejected: If the credentials are refused
            NetworkFailure: If the service cannot be reached
        """
        response = self._request(
            "POST",
            LOGIN_PATH,
            data={"service": "reader", "Email": email, "Passwd": password, "source": CLIENT_NAME},
        )
        for line in response.text.splitlines():
            if line.startswith("Auth="):
                token = line[len("Auth="):].strip()
                if token:
                    return token
        raise AuthRejected("Login response did not contain an Auth token")

    def subscriptions(self, auth_header: str) -> List[Subscription]:
        payload = self._json(self._request("GET", SUBSCRIPTION_LIST_PATH, auth_header, {"output": "json"}))

        result = []
        for entry in payload.get("subscriptions", []):
            sub_id = entry.get("id")
            if not sub_id:
                continue
            result.append(Subscription(
                id=sub_id,
                url=entry.get("url") or normalize_source(sub_id),
                title=entry.get("title", ""),
                timestamp=_usec_to_seconds(entry.get("newestItemTimestampUsec")),
            ))
        return result

    def unread_counts(self, auth_header: str) -> List[UnreadCount]:
        payload = self._json(self._request(
            "GET", UNREAD_COUNTS_PATH, auth_header, {"all": "true", "output": "json"}
        ))

        result = []
        for entry in payload.get("unreadcounts", []):
            if not entry.get("id"):
                continue
            try:
                count = int(entry.get("count", 0))
            except (TypeError, ValueError):
                count = 0
            result.append(UnreadCount(
                id=entry["id"],
                count=count,
                timestamp=_usec_to_seconds(entry.get("newestItemTimestampUsec")),
            ))
        return result

    def edit_token(self, auth_header: str) -> str:
        """Get a token for one edit operation."""
        token = self._request("GET", TOKEN_PATH, auth_header).text.strip()
        if not token:
            raise NetworkFailure("Empty edit token")
        return token

    def edit_subscription(self, auth_header: str, token: str, action: PendingAction) -> None:
        self._edit(SUBSCRIPTION_EDIT_PATH, auth_header, token, action)

    def edit_tag(self, auth_header: str, token: str, action: PendingAction) -> None:
        self._edit(EDIT_TAG_PATH, auth_header, token, action)

    def _edit(self, path: str, auth_header: str, token: str, action: PendingAction) -> None:
        data = action.to_request()
        data["T"] = token
        try:
            response = self._request("POST", path, auth_header, data=data)
        except NetworkFailure as e:
            if e.status_code is not None and 400 <= e.status_code < 500:
                raise EditRejected(f"{action} refused: {e}") from e
            raise

        body = response.text.strip()
        if body != "OK":
            raise EditRejected(f"{action} refused: {body[:200] or 'empty response'}")
        logger.debug(f"Service acknowledged {action}")
