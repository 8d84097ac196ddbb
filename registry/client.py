"""
HTTP client for the registry API.

Each method mirrors one engine operation. Rejections come back as the same
``RegistryError`` subclasses the engine raises, so callers can handle local
and remote registries alike::

    client = RegistryClient("http://localhost:8000/api", caller="alice")
    client.create_entry("hotline:region1", "tel:123-456")
    client.as_caller("bob").update_entry("hotline:region1", "tel:000")  # raises Forbidden
"""

import logging
from typing import Any, Dict, Iterator, Optional
from urllib.parse import quote

import requests

from registry.errors import ERRORS_BY_CODE

logger = logging.getLogger(__name__)

CALLER_HEADER = "X-Caller"
DEFAULT_TIMEOUT = 5  # seconds


def _segment(value: str) -> str:
    return quote(value, safe="")


class RegistryClient:
    def __init__(
        self,
        base_url: str,
        caller: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.caller = caller
        self.session = session or requests.Session()
        self.timeout = timeout

    def as_caller(self, caller: str) -> "RegistryClient":
        """Return a client sharing this one's session but acting as ``caller``."""
        return RegistryClient(self.base_url, caller=caller, session=self.session, timeout=self.timeout)

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        headers = kwargs.pop("headers", {})
        if self.caller:
            headers[CALLER_HEADER] = self.caller

        url = f"{self.base_url}/{path}"
        response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        if response.status_code >= 400:
            self._raise_for_error(response)
        return response

    @staticmethod
    def _raise_for_error(response: requests.Response) -> None:
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and body.get("code") in ERRORS_BY_CODE:
            logger.debug(f"Registry rejected {response.request.method} {response.url}: {body['code']}")
            raise ERRORS_BY_CODE[body["code"]](body.get("detail", ""))

        logger.warning(f"Registry request failed: {response.status_code} {response.url}")
        response.raise_for_status()

    # Entries

    def create_entry(self, key: str, value: str) -> Dict[str, Any]:
        return self._request("POST", "entries/", json={"key": key, "value": value}).json()

    def get_entry(self, key: str) -> Dict[str, Any]:
        return self._request("GET", f"entries/{_segment(key)}/").json()

    def update_entry(self, key: str, value: str) -> Dict[str, Any]:
        return self._request("PUT", f"entries/{_segment(key)}/", json={"value": value}).json()

    def delete_entry(self, key: str) -> None:
        self._request("DELETE", f"entries/{_segment(key)}/")

    def transfer_entry(self, key: str, new_owner: str) -> Dict[str, Any]:
        return self._request(
            "POST", f"entries/{_segment(key)}/transfer/", json={"new_owner": new_owner}
        ).json()

    def set_key_frozen(self, key: str, frozen: bool) -> Dict[str, Any]:
        return self._request("PUT", f"entries/{_segment(key)}/frozen/", json={"frozen": frozen}).json()

    # Owners

    def get_key_count(self, owner: str) -> int:
        return self._request("GET", f"owners/{_segment(owner)}/keys/count/").json()["count"]

    def get_key_by_owner(self, owner: str, index: int) -> str:
        return self._request("GET", f"owners/{_segment(owner)}/keys/{index}/").json()["key"]

    def list_owner_keys(self, owner: str, offset: int = 0, limit: Optional[int] = None) -> Dict[str, Any]:
        params = {"offset": offset}
        if limit is not None:
            params["limit"] = limit
        return self._request("GET", f"owners/{_segment(owner)}/keys/", params=params).json()

    def iter_owner_keys(self, owner: str, page_size: Optional[int] = None) -> Iterator[str]:
        """Yield every key of ``owner`` in index order, following pagination."""
        offset = 0
        while True:
            page = self.list_owner_keys(owner, offset=offset, limit=page_size)
            yield from page["results"]
            if not page["has_more"]:
                return
            offset = page["next_offset"]

    # Administration

    def set_paused(self, paused: bool) -> bool:
        return self._request("PUT", "admin/paused/", json={"paused": paused}).json()["paused"]

    def add_moderator(self, identity: str) -> None:
        self._request("POST", "admin/moderators/", json={"identity": identity})

    def remove_moderator(self, identity: str) -> None:
        self._request("DELETE", f"admin/moderators/{_segment(identity)}/")

    def is_moderator(self, identity: str) -> bool:
        return self._request("GET", f"moderators/{_segment(identity)}/").json()["moderator"]

    def concat_keys(self, a: str, b: str) -> str:
        return self._request("GET", "keys/concat/", params={"a": a, "b": b}).json()["key"]

    def status(self) -> Dict[str, Any]:
        return self._request("GET", "status/").json()
