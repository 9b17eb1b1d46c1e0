from typing import Any, Final, Protocol

import httpx
from result import Err, Ok, Result

from pitstop.core.errors import RemoteError
from pitstop.core.models import Task
from pitstop.util.logger import setup_logger

logger = setup_logger("pitstop", is_stream=True, is_file=True)

TASKS_TABLE: Final = "tasks"
SUB_TASKS_TABLE: Final = "sub_tasks"
COMMENTS_TABLE: Final = "task_comments"

# tasks に sub_tasks / comments を埋め込んで取得する
_TASK_SELECT: Final = f"*,sub_tasks:{SUB_TASKS_TABLE}(*),comments:{COMMENTS_TABLE}(*)"


class RemoteTasks(Protocol):
    """認証済みモードのバックエンド (ホスト型 BaaS) とのやり取り。

    タスクの CRUD は「所有者で絞った一覧取得 / 1件挿入 / id 指定の1件更新 / id 指定の1件削除」
    の4種類だけで表現する。転送・認証ヘッダ・リトライは実装側の責務。
    """

    def select_tasks(self, *, owner_id: str, include_public: bool = False) -> Result[list[Task], RemoteError]: ...

    def insert(self, table: str, record: dict[str, Any]) -> Result[dict[str, Any], RemoteError]: ...

    def update(self, table: str, row_id: str, fields: dict[str, Any]) -> Result[dict[str, Any] | None, RemoteError]: ...

    def delete(self, table: str, row_id: str) -> Result[None, RemoteError]: ...


class PostgrestTasks:
    """PostgREST 形式の REST API (/rest/v1/<table>) に対する RemoteTasks 実装。"""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        access_token: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
    ) -> None:
        if not base_url:
            _msg = "base_url is required for the remote backend"
            raise ValueError(_msg)
        headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
        }
        self._client = client or httpx.Client(timeout=timeout)
        self._client.headers.update(headers)
        self._base = base_url.rstrip("/") + "/rest/v1"

    def close(self) -> None:
        self._client.close()

    # ---- low-level helpers ---------------------------------------------

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Result[Any, RemoteError]:
        headers = {"Prefer": prefer} if prefer else None
        try:
            resp = self._client.request(method, f"{self._base}/{table}", params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            _msg = f"Remote request failed ({method} {table}): {e!s}"
            logger.warning(_msg)
            return Err(RemoteError(_msg))
        if resp.is_error:
            detail = resp.text.strip()[:200]
            _msg = f"Remote request failed ({method} {table}): HTTP {resp.status_code} {detail}"
            logger.warning(_msg)
            return Err(RemoteError(_msg, status_code=resp.status_code))
        if not resp.content:
            return Ok(None)
        try:
            return Ok(resp.json())
        except ValueError as e:
            return Err(RemoteError(f"Invalid JSON from remote ({method} {table}): {e!s}", status_code=resp.status_code))

    @staticmethod
    def _first_row(body: Any) -> dict[str, Any] | None:
        if isinstance(body, list):
            return body[0] if body and isinstance(body[0], dict) else None
        return body if isinstance(body, dict) else None

    # ---- RemoteTasks API -------------------------------------------------

    def select_tasks(self, *, owner_id: str, include_public: bool = False) -> Result[list[Task], RemoteError]:
        params = {"select": _TASK_SELECT, "order": "created_at.desc"}
        if include_public:
            params["or"] = f"(created_by.eq.{owner_id},visibility.eq.public)"
        else:
            params["created_by"] = f"eq.{owner_id}"
        match self._request("GET", TASKS_TABLE, params=params):
            case Ok(body):
                rows = body if isinstance(body, list) else []
                return Ok([Task.from_dict(r) for r in rows if isinstance(r, dict)])
            case Err(e):
                return Err(e)
            case _:
                return Err(RemoteError("Unexpected error"))

    def insert(self, table: str, record: dict[str, Any]) -> Result[dict[str, Any], RemoteError]:
        match self._request("POST", table, json=record, prefer="return=representation"):
            case Ok(body):
                row = self._first_row(body)
                if row is None or not row.get("id"):
                    return Err(RemoteError(f"Remote insert into {table} returned no row"))
                return Ok(row)
            case Err(e):
                return Err(e)
            case _:
                return Err(RemoteError("Unexpected error"))

    def update(self, table: str, row_id: str, fields: dict[str, Any]) -> Result[dict[str, Any] | None, RemoteError]:
        match self._request(
            "PATCH",
            table,
            params={"id": f"eq.{row_id}"},
            json=fields,
            prefer="return=representation",
        ):
            case Ok(body):
                return Ok(self._first_row(body))
            case Err(e):
                return Err(e)
            case _:
                return Err(RemoteError("Unexpected error"))

    def delete(self, table: str, row_id: str) -> Result[None, RemoteError]:
        # 該当行が無くても 2xx が返る (冪等)
        return self._request("DELETE", table, params={"id": f"eq.{row_id}"}).map(lambda _: None)
