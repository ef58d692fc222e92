"""
Read-only client for the remote task-tracking service.

Wraps the three listing endpoints the engine consumes: the Sync API
activity log, and the REST item and project listings. Any non-success
response is raised as ActivityFetchError; the client never retries.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from activity_tree.core.config import AppConfig
from activity_tree.core.errors import ActivityFetchError

logger = logging.getLogger(__name__)


class TodoistClient:
    """
    Thin authenticated wrapper around ``requests.Session``.

    Parameters
    ----------
    config : AppConfig
        Supplies the token, base URLs and request timeout
    session : Optional[requests.Session]
        Session to use (a new one is created when omitted)
    """

    def __init__(self, config: AppConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {config.require_token()}"})

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = self.session.get(url, params=params, timeout=self.config.request_timeout)
        except requests.RequestException as e:
            raise ActivityFetchError(None, str(e), url) from e

        if not response.ok:
            raise ActivityFetchError(response.status_code, response.reason or response.text, url)

        try:
            return response.json()
        except ValueError as e:
            raise ActivityFetchError(response.status_code, f"invalid JSON body: {e}", url) from e

    def get_activity(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Fetch one page of the activity log.

        Returns
        -------
        Dict[str, Any]
            ``{"events": [...], "count": int}`` as sent by the server
        """
        url = f"{self.config.sync_url}/activity/get"
        logger.debug(f"GET {url} {params}")
        payload = self._get(url, params)
        if not isinstance(payload, dict):
            raise ActivityFetchError(None, "No response from Activity API", url)
        return payload

    def get_items(self, project_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """List current items, optionally limited to one project."""
        params = {"project_id": project_id} if project_id else None
        payload = self._get(f"{self.config.rest_url}/tasks", params)
        return list(payload or [])

    def get_projects(self) -> List[Dict[str, Any]]:
        """List current projects (id, name, parent_id)."""
        payload = self._get(f"{self.config.rest_url}/projects")
        return list(payload or [])
