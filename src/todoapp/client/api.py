"""
HTTP client for the Todo API.

`ApiClient` owns the `httpx.AsyncClient` and attaches the stored bearer token to
every request. `AuthService` and `TodoService` are thin wrappers over the
`/auth` and `/todos` endpoints. Every transport or HTTP failure surfaces as
`RemoteError`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx
from pydantic import TypeAdapter

from .models import Todo, TodoId
from .storage import LocalCache

logger = logging.getLogger(__name__)

PAGE_SIZE = 200

_json_object = TypeAdapter(Dict[str, Any])


# PUBLIC_INTERFACE
class RemoteError(Exception):
    """A remote call failed: network unreachable, timeout or non-2xx response."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("message") or body.get("error")
        if isinstance(detail, str):
            return detail
    return str(body)


# PUBLIC_INTERFACE
class ApiClient:
    def __init__(
        self,
        base_url: str,
        cache: LocalCache,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._cache = cache
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/",
            timeout=httpx.Timeout(timeout),
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        headers: Dict[str, str] = {}
        token = self._cache.token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RemoteError(_error_detail(exc.response), status_code=exc.response.status_code) from exc
        except httpx.HTTPError as exc:
            raise RemoteError(f"{method} {path} failed: {exc.__class__.__name__}: {exc}") from exc
        if not response.content:
            return None
        return response.json()

    async def ping(self) -> bool:
        """True when the server answers at all, whatever the status code."""
        try:
            await self._client.get(self._client.base_url.copy_with(path="/"))
        except httpx.HTTPError:
            return False
        return True

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


# PUBLIC_INTERFACE
class AuthService:
    def __init__(self, api: ApiClient, cache: LocalCache) -> None:
        self._api = api
        self._cache = cache

    async def register(self, username: str, email: str, password: str) -> Dict[str, Any]:
        return await self._api.request(
            "POST", "auth/register", json={"username": username, "email": email, "password": password}
        )

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Exchange credentials for a token and store it; later requests are authenticated."""
        data = await self._api.request("POST", "auth/login", json={"email": email, "password": password})
        self._cache.set_credentials(data["token"], data.get("email", email))
        logger.info("Signed in as %s", data.get("email", email))
        return data

    def logout(self) -> None:
        self._cache.clear_credentials()

    def is_authenticated(self) -> bool:
        return self._cache.is_authenticated()


# PUBLIC_INTERFACE
class TodoService:
    """Remote Todo Store: CRUD scoped to the signed-in user."""

    def __init__(self, api: ApiClient) -> None:
        self._api = api

    async def get_all_todos(self) -> List[Todo]:
        todos: List[Todo] = []
        offset = 0
        while True:
            page = await self._api.request(
                "GET", "todos/", params={"limit": PAGE_SIZE, "offset": offset, "sort": "created_at"}
            )
            todos.extend(Todo.model_validate(item) for item in page["items"])
            if not page.get("has_more"):
                return todos
            offset += len(page["items"])

    async def create_todo(self, todo: Union[Todo, Mapping[str, Any]]) -> Todo:
        if isinstance(todo, Todo):
            payload = todo.to_payload()
        else:
            payload = {k: v for k, v in _json_object.dump_python(dict(todo), mode="json").items() if k != "id"}
        return Todo.model_validate(await self._api.request("POST", "todos/", json=payload))

    async def update_todo(self, todo_id: TodoId, updates: Mapping[str, Any]) -> Todo:
        payload = _json_object.dump_python(dict(updates), mode="json")
        data = await self._api.request("PUT", f"todos/{todo_id}", json=payload)
        return Todo.model_validate(data)

    async def delete_todo(self, todo_id: TodoId) -> None:
        await self._api.request("DELETE", f"todos/{todo_id}")
