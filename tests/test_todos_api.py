from datetime import datetime, timedelta

from .conftest import register_and_login


def create_todo_payload(
    text="Test Task",
    completed=False,
    category=None,
    due_date=None,
):
    payload = {
        "text": text,
        "completed": completed,
    }
    if category is not None:
        payload["category"] = category
    if due_date is not None:
        payload["due_date"] = due_date
    return payload


def assert_todo_shape(todo: dict):
    for key in ["id", "text", "completed", "category", "user_email", "created_at", "updated_at"]:
        assert key in todo
    assert "due_date" in todo
    assert isinstance(todo["id"], int)
    assert isinstance(todo["text"], str)
    assert isinstance(todo["completed"], bool)
    assert todo["category"] in ("work", "personal", "errands")
    # FastAPI/Pydantic returns strings for datetime fields
    datetime.fromisoformat(todo["created_at"])
    datetime.fromisoformat(todo["updated_at"])
    if todo["due_date"] is not None:
        datetime.fromisoformat(todo["due_date"])


class TestHealth:
    def test_health_check(self, client):
        res = client.get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Todo API is running"
        assert data["backend"] in ("memory", "sqlite")


class TestAuthRequired:
    def test_list_without_token_is_401(self, client):
        res = client.get("/api/todos/")
        assert res.status_code == 401
        assert res.json()["detail"] == "Authentication required"

    def test_garbage_token_is_401(self, client):
        res = client.post(
            "/api/todos/",
            json=create_todo_payload(),
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert res.status_code == 401
        assert res.json()["detail"] == "Invalid token"


class TestTodosCRUD:
    def test_create_todo_minimal(self, client, auth_headers):
        res = client.post("/api/todos/", json={"text": "Buy milk"}, headers=auth_headers)
        assert res.status_code == 201
        todo = res.json()
        assert_todo_shape(todo)
        assert todo["text"] == "Buy milk"
        assert todo["completed"] is False
        assert todo["category"] == "personal"
        assert todo["due_date"] is None

    def test_create_ignores_client_side_fields(self, client, auth_headers):
        payload = create_todo_payload(text="From offline", category="errands")
        payload.update({"id": 1700000000000, "user_email": "mallory@example.com", "created_at": "2020-01-01T00:00:00"})
        res = client.post("/api/todos/", json=payload, headers=auth_headers)
        assert res.status_code == 201
        todo = res.json()
        assert todo["id"] != 1700000000000
        assert todo["user_email"] != "mallory@example.com"
        assert todo["category"] == "errands"

    def test_create_todo_with_due_date_date_string(self, client, auth_headers):
        payload = create_todo_payload(text="Pay bills", category="work", due_date="2099-12-25")
        res = client.post("/api/todos/", json=payload, headers=auth_headers)
        assert res.status_code == 201
        todo = res.json()
        assert_todo_shape(todo)
        # Due date should be promoted to midnight
        assert todo["due_date"].startswith("2099-12-25T00:00:00")

    def test_utc_due_date_is_stored_naive(self, client, auth_headers):
        payload = create_todo_payload(text="Standup", due_date="2099-06-01T09:30:00+02:00")
        todo = client.post("/api/todos/", json=payload, headers=auth_headers).json()
        assert todo["due_date"] == "2099-06-01T07:30:00"

        payload = create_todo_payload(text="Retro", due_date="2099-06-01T07:30:00Z")
        todo = client.post("/api/todos/", json=payload, headers=auth_headers).json()
        assert todo["due_date"] == "2099-06-01T07:30:00"

    def test_get_todo_and_not_found(self, client, auth_headers):
        res_create = client.post("/api/todos/", json=create_todo_payload(text="Read book"), headers=auth_headers)
        assert res_create.status_code == 201
        tid = res_create.json()["id"]

        res_get = client.get(f"/api/todos/{tid}", headers=auth_headers)
        assert res_get.status_code == 200
        fetched = res_get.json()
        assert fetched["id"] == tid
        assert fetched["text"] == "Read book"

        res_404 = client.get("/api/todos/999999", headers=auth_headers)
        assert res_404.status_code == 404
        assert res_404.json()["detail"] == "Todo not found"

    def test_put_partial_update(self, client, auth_headers):
        res_create = client.post(
            "/api/todos/",
            json=create_todo_payload(text="Partial", category="work", due_date="2100-01-01"),
            headers=auth_headers,
        )
        tid = res_create.json()["id"]

        res_put = client.put(f"/api/todos/{tid}", json={"completed": True}, headers=auth_headers)
        assert res_put.status_code == 200
        updated = res_put.json()
        assert updated["completed"] is True
        # untouched fields keep their values
        assert updated["text"] == "Partial"
        assert updated["category"] == "work"
        assert updated["due_date"].startswith("2100-01-01")

        res_clear = client.put(f"/api/todos/{tid}", json={"due_date": None}, headers=auth_headers)
        assert res_clear.json()["due_date"] is None

        res_nf = client.put("/api/todos/424242", json={"text": "Nope"}, headers=auth_headers)
        assert res_nf.status_code == 404
        assert res_nf.json()["detail"] == "Todo not found"

    def test_delete_todo(self, client, auth_headers):
        tid = client.post("/api/todos/", json=create_todo_payload(text="ToDelete"), headers=auth_headers).json()["id"]

        res_del = client.delete(f"/api/todos/{tid}", headers=auth_headers)
        assert res_del.status_code == 200
        assert res_del.json()["message"] == "Todo deleted successfully"

        res_get = client.get(f"/api/todos/{tid}", headers=auth_headers)
        assert res_get.status_code == 404
        res_del_again = client.delete(f"/api/todos/{tid}", headers=auth_headers)
        assert res_del_again.status_code == 404
        assert res_del_again.json()["detail"] == "Todo not found"


class TestOwnership:
    def test_todos_are_never_shared(self, client, auth_headers):
        tid = client.post("/api/todos/", json=create_todo_payload(text="Mine"), headers=auth_headers).json()["id"]
        other = register_and_login(client)

        assert client.get(f"/api/todos/{tid}", headers=other).status_code == 404
        assert client.put(f"/api/todos/{tid}", json={"completed": True}, headers=other).status_code == 404
        assert client.delete(f"/api/todos/{tid}", headers=other).status_code == 404
        assert client.get("/api/todos/", headers=other).json()["total"] == 0

        # owner still sees it untouched
        mine = client.get(f"/api/todos/{tid}", headers=auth_headers).json()
        assert mine["completed"] is False


class TestListPaginationFilteringSorting:
    def seed_todos(self, client, headers, count=10):
        base = datetime.now()
        categories = ["work", "personal", "errands"]
        created_ids = []
        for i in range(count):
            due = (base + timedelta(days=count - i)).date().isoformat()
            payload = create_todo_payload(
                text=f"Task {i}",
                completed=(i % 2 == 0),
                category=categories[i % 3],
                due_date=due,
            )
            res = client.post("/api/todos/", json=payload, headers=headers)
            assert res.status_code == 201
            created_ids.append(res.json()["id"])
        return created_ids

    def test_list_basic_pagination(self, client, auth_headers):
        self.seed_todos(client, auth_headers, 7)
        page1 = client.get("/api/todos/?limit=3&offset=0", headers=auth_headers).json()
        assert page1["total"] == 7
        assert page1["limit"] == 3
        assert page1["offset"] == 0
        assert len(page1["items"]) == 3
        assert page1["has_more"] is True

        page3 = client.get("/api/todos/?limit=3&offset=6", headers=auth_headers).json()
        assert len(page3["items"]) == 1
        assert page3["has_more"] is False

    def test_list_filter_completed_and_category(self, client, auth_headers):
        self.seed_todos(client, auth_headers, 6)

        data_true = client.get("/api/todos/?completed=true&limit=100", headers=auth_headers).json()
        assert data_true["total"] == 3
        assert all(item["completed"] is True for item in data_true["items"])

        data_work = client.get("/api/todos/?category=work&limit=100", headers=auth_headers).json()
        assert data_work["total"] == 2
        assert all(item["category"] == "work" for item in data_work["items"])

        res_bad = client.get("/api/todos/?category=hobby", headers=auth_headers)
        assert res_bad.status_code == 422

    def test_list_search_q_matches_text(self, client, auth_headers):
        self.seed_todos(client, auth_headers, 5)
        data = client.get("/api/todos/?q=task 1&limit=100", headers=auth_headers).json()
        assert [item["text"] for item in data["items"]] == ["Task 1"]

    def test_list_sort_and_order(self, client, auth_headers):
        self.seed_todos(client, auth_headers, 5)
        default_items = client.get("/api/todos/?limit=5", headers=auth_headers).json()["items"]
        created_ts = [datetime.fromisoformat(t["created_at"]) for t in default_items]
        assert created_ts == sorted(created_ts, reverse=True)

        items_due = client.get("/api/todos/?sort=due_date&limit=5", headers=auth_headers).json()["items"]
        due_ts = [datetime.fromisoformat(t["due_date"]) for t in items_due]
        assert due_ts == sorted(due_ts)
        assert items_due[0]["text"] == "Task 4"

        items_desc = client.get("/api/todos/?sort=created_at&order=desc&limit=5", headers=auth_headers).json()["items"]
        created_desc = [datetime.fromisoformat(t["created_at"]) for t in items_desc]
        assert created_desc == sorted(created_desc, reverse=True)

    def test_list_invalid_order_param(self, client, auth_headers):
        res = client.get("/api/todos/?order=invalid", headers=auth_headers)
        assert res.status_code == 400
        assert res.json()["detail"] == "order must be 'asc' or 'desc'"


class TestValidationErrors:
    def test_create_validation_error_text_empty(self, client, auth_headers):
        res = client.post("/api/todos/", json={"text": "  "}, headers=auth_headers)
        assert res.status_code == 422
        body = res.json()
        assert body.get("error") == "ValidationError"
        assert body.get("message") == "Request validation failed"
        assert isinstance(body.get("detail"), list)

    def test_put_validation_error_bad_due_date(self, client, auth_headers):
        tid = client.post("/api/todos/", json=create_todo_payload(text="Due date bad"), headers=auth_headers).json()["id"]
        res = client.put(f"/api/todos/{tid}", json={"due_date": "not-a-date"}, headers=auth_headers)
        assert res.status_code == 422
        assert res.json().get("error") == "ValidationError"
