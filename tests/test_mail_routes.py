import pytest
from fastapi.testclient import TestClient

from inboxsync.api.main import app
from inboxsync.domain.cursor import SyncCursor
from inboxsync.domain.errors import TaskServiceError
from inboxsync.infrastructure.email.factory import adapter_for
from inboxsync.infrastructure.http.mail_routes import account_store, get_adapter_factory, task_service
from inboxsync.infrastructure.stores import InMemoryAccountStore

from tests.conftest import PASSWORD


class FakeTaskService:
    def __init__(self, fail: bool = False) -> None:
        self.created = []
        self.fail = fail

    def create_task(self, user_id, draft):
        if self.fail:
            raise TaskServiceError("HTTP 503: unavailable")
        self.created.append((user_id, draft))
        return {"id": f"task-{len(self.created)}", **draft.to_payload()}


@pytest.fixture
def store():
    return InMemoryAccountStore()


@pytest.fixture
def tasks():
    return FakeTaskService()


@pytest.fixture
def client(store, tasks):
    app.dependency_overrides[account_store] = lambda: store
    app.dependency_overrides[task_service] = lambda: tasks
    yield TestClient(app)
    app.dependency_overrides.clear()


def imap_payload(password=PASSWORD, **overrides):
    payload = {
        "protocol": "IMAP",
        "host": "imap.example.com",
        "port": 993,
        "useSSL": True,
        "email": "me@example.com",
        "password": password,
    }
    payload.update(overrides)
    return payload


def pop3_payload(password=PASSWORD):
    return imap_payload(password, protocol="POP3", host="pop3.example.com", port=995)


class TestConnect:
    def test_success(self, client, imap_server):
        response = client.post("/api/mail/connect", json=imap_payload())

        assert response.status_code == 200
        assert response.json() == {"success": True}

    def test_uses_connect_timeout(self, client, imap_server):
        timeouts = []

        def recording_factory(config, timeout):
            timeouts.append(timeout)
            return adapter_for(config, timeout)

        app.dependency_overrides[get_adapter_factory] = lambda: recording_factory
        client.post("/api/mail/connect", json=imap_payload())

        assert timeouts == [5.0]

    def test_bad_credentials_are_401(self, client, imap_server):
        response = client.post("/api/mail/connect", json=imap_payload(password="wrong"))

        assert response.status_code == 401
        assert "Authentication failed" in response.json()["detail"]["message"]

    def test_unreachable_server_is_502(self, client, monkeypatch):
        import poplib

        def unreachable(*args, **kwargs):
            raise ConnectionRefusedError(111, "refused")

        monkeypatch.setattr(poplib, "POP3_SSL", unreachable)
        response = client.post("/api/mail/connect", json=pop3_payload())

        assert response.status_code == 502
        assert "Connection failed" in response.json()["detail"]["message"]

    def test_invalid_port_is_rejected(self, client):
        response = client.post("/api/mail/connect", json=imap_payload(port=0))

        assert response.status_code == 422


class TestMessages:
    def test_initial_then_refresh(self, client, imap_server):
        for uid in ("101", "102", "103"):
            imap_server.add(uid)

        first = client.post("/api/mail/messages", json={"config": imap_payload()}).json()

        assert first["latestUid"] == "103"
        assert first["mode"] == "initial"
        assert [e["id"] for e in first["emails"]] == ["imap-103", "imap-102", "imap-101"]
        assert set(first["emails"][0]) == {
            "id", "senderName", "senderAddress", "subject", "body", "receivedAt", "isRead",
        }

        idle = client.post("/api/mail/messages", json={"config": imap_payload(), "lastUid": "103"}).json()
        assert idle == {"emails": [], "latestUid": "103", "mode": "refresh"}

        imap_server.add("104")
        fresh = client.post("/api/mail/messages", json={"config": imap_payload(), "lastUid": 103}).json()
        assert [e["id"] for e in fresh["emails"]] == ["imap-104"]
        assert fresh["latestUid"] == "104"

    def test_empty_mailbox_sentinel(self, client, pop3_server):
        empty = client.post("/api/mail/messages", json={"config": pop3_payload()}).json()
        assert empty["emails"] == []
        assert empty["latestUid"] == "EMPTY_MAILBOX"

        pop3_server.add("a")
        first = client.post(
            "/api/mail/messages", json={"config": pop3_payload(), "lastUid": empty["latestUid"]}
        ).json()
        assert [e["id"] for e in first["emails"]] == ["pop3-a"]
        assert first["latestUid"] == "a"

    def test_lost_pop3_cursor_heals(self, client, pop3_server):
        for uidl in ("a", "b", "c"):
            pop3_server.add(uidl)

        body = client.post("/api/mail/messages", json={"config": pop3_payload(), "lastUid": "z"}).json()

        assert body["mode"] == "healed"
        assert body["latestUid"] == "c"
        assert len(body["emails"]) == 3

    @pytest.mark.parametrize("payload", [{}, {"config": None}, {"config": imap_payload(password="")}])
    def test_missing_credentials_are_400(self, client, payload):
        response = client.post("/api/mail/messages", json=payload)

        assert response.status_code == 400
        assert response.json()["detail"] == "Mail credentials missing"

    def test_auth_failure_is_401(self, client, imap_server):
        response = client.post("/api/mail/messages", json={"config": imap_payload(password="wrong")})

        assert response.status_code == 401


class TestAccounts:
    def create(self, client, payload=None):
        return client.post("/api/mail/accounts", json={"name": "Work", "config": payload or imap_payload()})

    def test_create_verifies_and_stores_without_password(self, client, store, imap_server):
        response = self.create(client)

        assert response.status_code == 201
        body = response.json()
        assert body["id"].startswith("mail-")
        assert body["useSSL"] is True
        assert body["latestUid"] is None
        assert store.get(body["id"]).config.password == ""

    def test_create_with_bad_credentials_stores_nothing(self, client, store, imap_server):
        response = self.create(client, imap_payload(password="wrong"))

        assert response.status_code == 401
        assert store.list() == []

    def test_poll_persists_cursor(self, client, store, imap_server):
        imap_server.add("7")
        account_id = self.create(client).json()["id"]

        body = client.post(f"/api/mail/accounts/{account_id}/poll", json={"password": PASSWORD}).json()

        assert [e["id"] for e in body["emails"]] == ["imap-7"]
        assert store.get(account_id).cursor == SyncCursor.at("7")
        listed = client.get("/api/mail/accounts").json()
        assert [(a["id"], a["latestUid"]) for a in listed] == [(account_id, "7")]

    def test_poll_drops_known_ids(self, client, pop3_server):
        for uidl in ("a", "b"):
            pop3_server.add(uidl)
        account_id = self.create(client, pop3_payload()).json()["id"]

        body = client.post(
            f"/api/mail/accounts/{account_id}/poll",
            json={"password": PASSWORD, "knownIds": ["pop3-a"]},
        ).json()

        assert [e["id"] for e in body["emails"]] == ["pop3-b"]
        assert body["latestUid"] == "b"

    def test_failed_poll_keeps_cursor(self, client, store, imap_server):
        imap_server.add("7")
        account_id = self.create(client).json()["id"]
        store.save_cursor(account_id, SyncCursor.at("3"))

        response = client.post(f"/api/mail/accounts/{account_id}/poll", json={"password": "wrong"})

        assert response.status_code == 401
        assert store.get(account_id).cursor == SyncCursor.at("3")

    def test_reset_forgets_cursor(self, client, store, imap_server):
        account_id = self.create(client).json()["id"]
        store.save_cursor(account_id, SyncCursor.at("9"))

        body = client.post(f"/api/mail/accounts/{account_id}/reset").json()

        assert body["latestUid"] is None
        assert store.get(account_id).cursor.is_unset

    def test_delete(self, client, imap_server):
        account_id = self.create(client).json()["id"]

        assert client.delete(f"/api/mail/accounts/{account_id}").status_code == 204
        assert client.delete(f"/api/mail/accounts/{account_id}").status_code == 404
        assert client.get("/api/mail/accounts").json() == []

    def test_unknown_account_is_404(self, client):
        response = client.post("/api/mail/accounts/mail-missing/poll", json={"password": PASSWORD})

        assert response.status_code == 404


class TestCreateTask:
    email = {
        "id": "imap-5",
        "senderName": "Alice Kim",
        "senderAddress": "alice@example.com",
        "subject": "Review the contract",
        "body": "Please review by Friday.",
        "receivedAt": "2026-01-05T09:00:00+00:00",
        "isRead": False,
    }

    def test_creates_task_from_email(self, client, tasks):
        response = client.post(
            "/api/mail/messages/task",
            json={"userId": "user-1", "email": self.email, "priority": "HIGH", "dueDate": "2026-01-09"},
        )

        assert response.status_code == 200
        assert response.json()["title"] == "Review the contract"
        ((user_id, draft),) = tasks.created
        assert user_id == "user-1"
        assert draft.priority.value == "HIGH"
        assert draft.due_date.isoformat() == "2026-01-09"
        assert "From: Alice Kim (alice@example.com)" in draft.description

    def test_task_service_failure_is_502(self, client):
        app.dependency_overrides[task_service] = lambda: FakeTaskService(fail=True)

        response = client.post("/api/mail/messages/task", json={"userId": "user-1", "email": self.email})

        assert response.status_code == 502


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/health/live").json() == {"status": "alive"}
