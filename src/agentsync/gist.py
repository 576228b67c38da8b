"""
Remote store -- private GitHub Gists as the sync transport.

One gist holds one sync document. The client is thin: HTTP
errors are raised as ``requests`` exceptions and left for
``errors.to_sync_error`` to classify upstream.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import requests

from .config import LEGACY_SYNC_MARKER, SYNC_MARKER

logger = logging.getLogger("agentsync.gist")

SYNC_FILENAME = "coding-agent-sync.json"
LEGACY_SYNC_FILENAME = "opencodesync.json"
SYNC_FILENAMES = (SYNC_FILENAME, LEGACY_SYNC_FILENAME)
SYNC_MARKERS = (SYNC_MARKER, LEGACY_SYNC_MARKER)

DEFAULT_API_URL = "https://api.github.com"


@dataclass
class Container:
    """A gist as seen by the sync layer."""

    id: str
    description: str = ""
    files: dict[str, str] = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""

    def sync_file(self) -> Optional[tuple[str, str]]:
        """Return ``(filename, content)`` of the sync document, current name first."""
        for name in SYNC_FILENAMES:
            if name in self.files:
                return name, self.files[name]
        return None


def is_sync_description(description: Optional[str]) -> bool:
    return bool(description) and any(m in description for m in SYNC_MARKERS)


class GistClient:
    """Authenticated CRUD over the GitHub Gist API.

    Args:
        token: GitHub token with the ``gist`` scope.
        api_url: API base URL (GitHub Enterprise installs differ).
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        token: str,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        })

    def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """Make one API call and return the parsed JSON body.

        Raises:
            requests.HTTPError: On a 4xx/5xx response.
            requests.RequestException: On connection failure or timeout.
        """
        url = f"{self.api_url}{endpoint}"
        logger.debug("%s %s", method, url)
        resp = self.session.request(
            method, url, json=data, params=params, timeout=self.timeout,
        )
        resp.raise_for_status()
        if not resp.content:
            return None
        return resp.json()

    def _fetch_raw(self, url: str) -> str:
        resp = self.session.request("GET", url, timeout=self.timeout)
        resp.raise_for_status()
        return resp.text

    def _to_container(self, gist: dict[str, Any], with_content: bool = True) -> Container:
        files: dict[str, str] = {}
        for name, info in (gist.get("files") or {}).items():
            if not info:
                continue
            content = info.get("content")
            if with_content and info.get("truncated") and info.get("raw_url"):
                content = self._fetch_raw(info["raw_url"])
            if content is not None:
                files[name] = content
        return Container(
            id=gist["id"],
            description=gist.get("description") or "",
            files=files,
            created_at=gist.get("created_at") or "",
            updated_at=gist.get("updated_at") or "",
        )

    @staticmethod
    def _files_body(files: dict[str, str]) -> dict[str, Any]:
        return {name: {"content": content} for name, content in files.items()}

    # -- CRUD ---------------------------------------------------------------

    def create_container(self, description: str, files: dict[str, str]) -> Container:
        """Create a private gist holding ``files``."""
        gist = self._request("POST", "/gists", {
            "description": description,
            "public": False,
            "files": self._files_body(files),
        })
        logger.info("Created gist %s", gist["id"])
        return self._to_container(gist, with_content=False)

    def get_container(self, container_id: str) -> Container:
        """Fetch a gist with full file contents."""
        return self._to_container(self._request("GET", f"/gists/{container_id}"))

    def update_container(
        self, container_id: str, description: str, files: dict[str, str],
    ) -> Container:
        """Replace the named files in a gist. Files not named are kept."""
        gist = self._request("PATCH", f"/gists/{container_id}", {
            "description": description,
            "files": self._files_body(files),
        })
        logger.info("Updated gist %s", container_id)
        return self._to_container(gist, with_content=False)

    def delete_file(self, container_id: str, filename: str) -> None:
        self._request("PATCH", f"/gists/{container_id}", {"files": {filename: None}})
        logger.info("Deleted %s from gist %s", filename, container_id)

    def list_containers(self, per_page: int = 100) -> list[Container]:
        """List the owner's gists whose description carries a sync marker.

        Contents are not loaded; use ``get_container`` for that. Pages are
        fetched until one comes back short.
        """
        containers: list[Container] = []
        page = 1
        while True:
            gists: list[dict] = self._request(
                "GET", "/gists", params={"per_page": per_page, "page": page},
            ) or []
            containers.extend(
                self._to_container(g, with_content=False)
                for g in gists
                if is_sync_description(g.get("description"))
            )
            if len(gists) < per_page:
                return containers
            page += 1

    def find_sync_container(self) -> Optional[Container]:
        """Return the first sync gist with full contents, or None."""
        for container in self.list_containers():
            return self.get_container(container.id)
        return None

    # -- identity -----------------------------------------------------------

    def get_user(self) -> dict[str, Optional[str]]:
        user = self._request("GET", "/user")
        return {"login": user.get("login"), "name": user.get("name")}

    def validate_token(self) -> bool:
        """Check identity plus gist read access. Never writes anything."""
        try:
            user = self._request("GET", "/user")
            self._request("GET", "/gists", params={"per_page": 1})
        except requests.RequestException as exc:
            logger.debug("Token validation failed: %s", exc)
            return False
        return bool(user and user.get("login"))
