from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from src.app.core.config import get_settings
from src.app.utils.logger import get_logger

logger = get_logger("tools.linear_client")

settings = get_settings()


_ISSUE_FIELDS = """
    id
    identifier
    title
    description
    priority
    url
    state { name }
"""

_LIST_ISSUES_QUERY = """
query Issues($first: Int, $filter: IssueFilter) {
  issues(first: $first, filter: $filter) {
    nodes {%s}
  }
}
""" % _ISSUE_FIELDS

_CREATE_ISSUE_MUTATION = """
mutation IssueCreate($input: IssueCreateInput!) {
  issueCreate(input: $input) {
    success
    issue {%s}
  }
}
""" % _ISSUE_FIELDS

# GraphQL extension codes -> gateway error codes
_GRAPHQL_CODES = {
    "RATELIMITED": "RATE_LIMIT",
    "AUTHENTICATION_ERROR": "AUTHENTICATION_ERROR",
    "FORBIDDEN": "AUTHENTICATION_ERROR",
}


class LinearAPIError(RuntimeError):
    """
    Raised when a Linear request fails. `code` is None for business errors.
    """
    def __init__(self, message: str, code: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.code = code
        self.details = details


# ---------------------
# Helper functions
# ---------------------
def _issue_from_node(node: Dict[str, Any]) -> Dict[str, Any]:
    state = node.get("state") or {}
    return {
        "id": node.get("id"),
        "identifier": node.get("identifier"),
        "title": node.get("title"),
        "description": node.get("description"),
        "status": state.get("name"),
        "priority": node.get("priority"),
        "url": node.get("url"),
    }


def _code_for_status(status_code: int) -> Optional[str]:
    if status_code in (401, 403):
        return "AUTHENTICATION_ERROR"
    if status_code == 429:
        return "RATE_LIMIT"
    return None


def _code_for_graphql_errors(errors: List[Dict[str, Any]]) -> Optional[str]:
    for err in errors:
        extensions = err.get("extensions") or {}
        code = _GRAPHQL_CODES.get(str(extensions.get("code", "")).upper())
        if code:
            return code
    return None


# ---------------------
# Client
# ---------------------
class LinearClient:
    """
    Minimal Linear GraphQL client covering the operations exposed as tools.
    No retries here; a failed request surfaces as LinearAPIError.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        api_key = api_key if api_key is not None else settings.LINEAR_API_KEY
        if not api_key:
            raise ValueError("LINEAR_API_KEY is not configured")

        self._api_url = api_url or settings.LINEAR_API_URL
        self._http = httpx.Client(
            headers={"Authorization": api_key, "Content-Type": "application/json"},
            timeout=timeout if timeout is not None else settings.LINEAR_TIMEOUT_SECONDS,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def _execute(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = self._http.post(self._api_url, json={"query": query, "variables": variables})
        except httpx.TimeoutException as e:
            raise LinearAPIError(f"Linear request timed out: {e}", code="NETWORK_ERROR") from e
        except httpx.TransportError as e:
            raise LinearAPIError(f"Linear request failed: {e}", code="NETWORK_ERROR") from e

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        errors = (payload or {}).get("errors") if isinstance(payload, dict) else None

        if resp.status_code >= 400:
            code = _code_for_status(resp.status_code) or (_code_for_graphql_errors(errors) if errors else None)
            message = errors[0].get("message") if errors else f"Linear API returned HTTP {resp.status_code}"
            raise LinearAPIError(message, code=code, details={"status_code": resp.status_code})

        if errors:
            raise LinearAPIError(
                errors[0].get("message") or "Linear API error",
                code=_code_for_graphql_errors(errors),
                details={"errors": errors},
            )

        if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
            raise LinearAPIError("Linear API returned an unexpected payload")

        return payload["data"]

    def issues(self, teamId: Optional[str] = None, first: int = 50) -> Dict[str, Any]:
        variables: Dict[str, Any] = {"first": first}
        if teamId:
            variables["filter"] = {"team": {"id": {"eq": teamId}}}

        data = self._execute(_LIST_ISSUES_QUERY, variables)
        nodes = (data.get("issues") or {}).get("nodes") or []
        logger.debug("linear issues team_id=%s count=%d", teamId, len(nodes))
        return {"nodes": [_issue_from_node(n) for n in nodes]}

    def create_issue(self, **issue_input: Any) -> Dict[str, Any]:
        data = self._execute(_CREATE_ISSUE_MUTATION, {"input": issue_input})
        outcome = data.get("issueCreate") or {}
        if not outcome.get("success") or not outcome.get("issue"):
            raise LinearAPIError("Linear did not create the issue", details={"input": issue_input})

        issue = _issue_from_node(outcome["issue"])
        logger.debug("linear issue created id=%s", issue["id"])
        return issue
