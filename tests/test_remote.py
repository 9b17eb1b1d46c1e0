import json
import unittest
from datetime import UTC, datetime

import httpx
import pytest

from fakes import FakeRemote
from pitstop.core.errors import NotFoundError, RemoteError
from pitstop.core.models import TaskDraft, TaskPatch
from pitstop.core.ops import TaskStore
from pitstop.storage.remote import PostgrestTasks

NOW = datetime(2025, 1, 1, tzinfo=UTC)
BASE = "https://example.supabase.co"


class TestAuthenticatedStore(unittest.TestCase):
    """認証済みモード (リモートバックエンド) の TaskStore のテスト"""

    def setUp(self) -> None:
        self.remote = FakeRemote(
            [
                {"id": "r0", "title": "Mine", "created_by": "u1", "due_date": "2020-01-01T00:00:00.000Z"},
                {"id": "x0", "title": "Someone else's", "created_by": "u2", "visibility": "public"},
            ],
        )
        self.store = TaskStore.authenticated(self.remote, "u1", clock=lambda: NOW)

    def test_initial_load_only_own_tasks(self) -> None:
        assert [t.id for t in self.store.list()] == ["r0"]

    def test_include_public(self) -> None:
        store = TaskStore.authenticated(self.remote, "u1", include_public=True)
        assert {t.id for t in store.list()} == {"r0", "x0"}

    def test_create_adopts_remote_id(self) -> None:
        t = self.store.create(TaskDraft(title="Remote task")).unwrap()
        assert t.id.startswith("r")
        assert t.created_by == "u1"
        assert self.remote.tables["tasks"][t.id]["title"] == "Remote task"
        assert self.remote.calls[-1] == ("insert", "tasks")

    def test_no_quota_when_authenticated(self) -> None:
        for i in range(3):
            assert self.store.create(TaskDraft(title=f"T{i}")).is_ok()
        assert self.store.quota_status() == "unlimited"

    def test_update(self) -> None:
        t = self.store.update("r0", TaskPatch(title="Renamed")).unwrap()
        assert t.title == "Renamed"
        assert self.remote.tables["tasks"]["r0"]["title"] == "Renamed"

    def test_update_missing_remote_row(self) -> None:
        """リモート側で消えていた行の更新は NotFound"""
        del self.remote.tables["tasks"]["r0"]
        err = self.store.update("r0", TaskPatch(title="x")).unwrap_err()
        assert isinstance(err, NotFoundError)

    def test_update_unknown_id_never_calls_remote(self) -> None:
        self.remote.calls.clear()
        assert isinstance(self.store.update("zz", TaskPatch(title="x")).unwrap_err(), NotFoundError)
        assert self.remote.calls == []

    def test_remote_failure_is_err(self) -> None:
        self.remote.fail = True
        err = self.store.create(TaskDraft(title="T")).unwrap_err()
        assert isinstance(err, RemoteError)
        assert err.status_code == 503
        assert isinstance(self.store.delete("r0").unwrap_err(), RemoteError)
        assert [t.id for t in self.store.list()] == ["r0"]

    def test_delete_is_idempotent(self) -> None:
        assert self.store.delete("r0").is_ok()
        assert self.store.delete("r0").is_ok()
        assert self.store.list() == []

    def test_sweep_is_in_memory_only(self) -> None:
        """認証済みモードの期限切れ検出はリモートへ書き込まない"""
        self.remote.calls.clear()
        assert self.store.apply_sweep()
        assert self.store.get("r0").unwrap().status == "delayed"
        assert self.remote.calls == []

    def test_sub_tasks_and_comments_are_sent(self) -> None:
        sub = self.store.add_sub_task("r0", "Step").unwrap()
        assert self.remote.tables["sub_tasks"][sub.id]["task_id"] == "r0"
        comment = self.store.add_comment("r0", "hi").unwrap()
        assert comment.user_id == "u1"
        assert self.remote.tables["task_comments"][comment.id]["task_id"] == "r0"
        assert self.store.delete_comment("r0", comment.id).is_ok()
        assert comment.id not in self.remote.tables["task_comments"]

    def test_initial_load_failure(self) -> None:
        remote = FakeRemote()
        remote.fail = True
        with self.assertLogs("pitstop", level="WARNING"):
            store = TaskStore.authenticated(remote, "u1")
        assert store.list() == []

    def test_requires_real_user(self) -> None:
        with pytest.raises(ValueError, match="user id"):
            TaskStore.authenticated(self.remote, "")
        with pytest.raises(ValueError, match="user id"):
            TaskStore.authenticated(self.remote, "guest")


def _client(handler) -> httpx.Client:  # noqa: ANN001
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestPostgrestTasks(unittest.TestCase):
    """PostgREST クライアントの HTTP 変換のテスト"""

    def test_select_tasks(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"id": "r1", "title": "T", "created_by": "u1", "sub_tasks": [], "comments": []}])

        api = PostgrestTasks(BASE, "anon", access_token="jwt", client=_client(handler))
        tasks = api.select_tasks(owner_id="u1").unwrap()
        assert [t.id for t in tasks] == ["r1"]
        req = seen[0]
        assert req.method == "GET"
        assert req.url.path == "/rest/v1/tasks"
        assert req.url.params["created_by"] == "eq.u1"
        assert req.headers["apikey"] == "anon"
        assert req.headers["authorization"] == "Bearer jwt"

    def test_select_tasks_include_public(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        api = PostgrestTasks(BASE, "anon", client=_client(handler))
        assert api.select_tasks(owner_id="u1", include_public=True).unwrap() == []
        assert seen[0].url.params["or"] == "(created_by.eq.u1,visibility.eq.public)"
        assert seen[0].headers["authorization"] == "Bearer anon"

    def test_insert(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "POST"
            assert request.headers["prefer"] == "return=representation"
            body = json.loads(request.content)
            return httpx.Response(201, json=[{**body, "id": "new-id"}])

        api = PostgrestTasks(BASE, "anon", client=_client(handler))
        row = api.insert("tasks", {"title": "T"}).unwrap()
        assert row == {"title": "T", "id": "new-id"}

    def test_insert_without_row_is_err(self) -> None:
        api = PostgrestTasks(BASE, "anon", client=_client(lambda _r: httpx.Response(201, json=[])))
        assert api.insert("tasks", {"title": "T"}).is_err()

    def test_update_without_match(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "PATCH"
            assert request.url.params["id"] == "eq.r9"
            return httpx.Response(200, json=[])

        api = PostgrestTasks(BASE, "anon", client=_client(handler))
        assert api.update("tasks", "r9", {"title": "x"}).unwrap() is None

    def test_delete(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "DELETE"
            return httpx.Response(204)

        api = PostgrestTasks(BASE, "anon", client=_client(handler))
        assert api.delete("tasks", "r1").is_ok()

    def test_http_error_status(self) -> None:
        api = PostgrestTasks(BASE, "anon", client=_client(lambda _r: httpx.Response(500, text="boom")))
        with self.assertLogs("pitstop", level="WARNING"):
            err = api.select_tasks(owner_id="u1").unwrap_err()
        assert isinstance(err, RemoteError)
        assert err.status_code == 500

    def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        api = PostgrestTasks(BASE, "anon", client=_client(handler))
        err = api.delete("tasks", "r1").unwrap_err()
        assert isinstance(err, RemoteError)
        assert err.status_code is None

    def test_base_url_required(self) -> None:
        with pytest.raises(ValueError, match="base_url"):
            PostgrestTasks("", "anon")
