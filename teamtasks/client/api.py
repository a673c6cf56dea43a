"""
Async HTTP client for the Team Tasks REST API.

Error responses are raised as typed exceptions carrying the server's
message and code, so callers can tell a CONFLICT from a validation failure
without inspecting status codes.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Request rejected by the server."""

    def __init__(self, message: str, status_code: int, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class ApiValidationError(ApiError):
    pass


class ApiUnauthorizedError(ApiError):
    pass


class ApiForbiddenError(ApiError):
    pass


class ApiNotFoundError(ApiError):
    pass


class ApiConflictError(ApiError):
    pass


ERRORS_BY_STATUS = {
    400: ApiValidationError,
    401: ApiUnauthorizedError,
    403: ApiForbiddenError,
    404: ApiNotFoundError,
    409: ApiConflictError,
}


def _params(**values) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


class TaskApiClient:
    """Typed calls for every REST endpoint."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        response = await self._client.request(method, path, params=params, json=json)

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            if not isinstance(body, dict):
                body = {}
            message = body.get("error") or body.get("detail") or response.reason_phrase
            error_class = ERRORS_BY_STATUS.get(response.status_code, ApiError)
            logger.debug(f"{method} {path} failed: {response.status_code} {message}")
            raise error_class(str(message), response.status_code, body.get("code"))

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # ==================== DAILY TASKS ====================

    async def list_daily_tasks(
        self,
        date: Optional[str] = None,
        employee_id: Optional[str] = None,
        workstation_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        return await self._request(
            "GET",
            "/api/tasks/daily",
            params=_params(date=date, employeeId=employee_id, workstationId=workstation_id),
        )

    async def set_completion(self, task_id: str, is_completed: bool) -> Dict[str, Any]:
        return await self._request("PATCH", f"/api/tasks/daily/{task_id}", json={"isCompleted": is_completed})

    async def reassign(self, task_id: str, employee_id: str) -> Dict[str, Any]:
        return await self._request("PATCH", f"/api/tasks/daily/{task_id}", json={"employeeId": employee_id})

    # ==================== MANAGER ====================

    async def manager_dashboard(
        self,
        date: Optional[str] = None,
        employee_id: Optional[str] = None,
        workstation_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._request(
            "GET",
            "/api/manager/dashboard",
            params=_params(date=date, employeeId=employee_id, workstationId=workstation_id),
        )

    async def get_day(self, date: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/days/{date}")

    async def prepare_day(self, date: str) -> Dict[str, Any]:
        return await self._request("POST", f"/api/days/{date}/prepare")

    # ==================== TEMPLATES ====================

    async def list_templates(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/api/tasks/templates")

    async def create_template(self, **fields) -> Dict[str, Any]:
        """Fields in camelCase, e.g. title=..., workstationId=..."""
        return await self._request("POST", "/api/tasks/templates", json=fields)

    async def update_template(self, template_id: str, **fields) -> Dict[str, Any]:
        return await self._request("PATCH", f"/api/tasks/templates/{template_id}", json=fields)

    async def delete_template(self, template_id: str) -> None:
        await self._request("DELETE", f"/api/tasks/templates/{template_id}")

    # ==================== WORKSTATIONS & EMPLOYEES ====================

    async def list_workstations(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/api/workstations")

    async def create_workstation(self, name: str) -> Dict[str, Any]:
        return await self._request("POST", "/api/workstations", json={"name": name})

    async def delete_workstation(self, workstation_id: str) -> None:
        await self._request("DELETE", f"/api/workstations/{workstation_id}")

    async def list_members(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/api/team/members")

    async def create_employee(self, name: str, email: str, workstation_ids: Optional[List[str]] = None) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/api/employees",
            json={"name": name, "email": email, "workstationIds": workstation_ids or []},
        )

    async def set_employee_workstations(self, employee_id: str, workstation_ids: List[str]) -> Dict[str, Any]:
        return await self._request(
            "PATCH",
            f"/api/employees/{employee_id}/workstations",
            json={"workstationIds": workstation_ids},
        )
