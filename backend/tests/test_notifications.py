from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from starlette.websockets import WebSocketDisconnect

from app.services.notification_service import NotificationHub, get_hub, init_hub, shutdown_hub


@pytest_asyncio.fixture
async def hub():
    await shutdown_hub()
    yield init_hub()
    await shutdown_hub()


class TestNotificationHub:
    @pytest.mark.asyncio
    async def test_get_hub_before_init(self):
        await shutdown_hub()
        with pytest.raises(RuntimeError):
            get_hub()

    @pytest.mark.asyncio
    async def test_init_is_idempotent(self, hub):
        assert init_hub() is hub
        assert get_hub() is hub

    @pytest.mark.asyncio
    async def test_connect_accepts_and_joins_room(self):
        hub = NotificationHub()
        ws = AsyncMock()
        await hub.connect(1, ws)
        ws.accept.assert_awaited_once()
        assert hub.connection_count == 1

        hub.disconnect(1, ws)
        assert hub.connection_count == 0

    @pytest.mark.asyncio
    async def test_publish_to_user_only_reaches_that_user(self):
        hub = NotificationHub()
        alice_tab1, alice_tab2, bob = AsyncMock(), AsyncMock(), AsyncMock()
        await hub.connect(1, alice_tab1)
        await hub.connect(1, alice_tab2)
        await hub.connect(2, bob)

        delivered = await hub.publish_to_user(1, "document:deleted", {"documentId": 5})
        assert delivered == 2
        expected = {"event": "document:deleted", "data": {"documentId": 5}}
        alice_tab1.send_json.assert_awaited_once_with(expected)
        alice_tab2.send_json.assert_awaited_once_with(expected)
        bob.send_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publish_without_listeners(self):
        hub = NotificationHub()
        assert await hub.publish_to_user(99, "document:uploaded", {}) == 0

    @pytest.mark.asyncio
    async def test_publish_global(self):
        hub = NotificationHub()
        alice, bob = AsyncMock(), AsyncMock()
        await hub.connect(1, alice)
        await hub.connect(2, bob)

        assert await hub.publish_global("category:created", {"categoryId": 3}) == 2
        bob.send_json.assert_awaited_once_with({"event": "category:created", "data": {"categoryId": 3}})

    @pytest.mark.asyncio
    async def test_dead_socket_dropped(self):
        hub = NotificationHub()
        dead, alive = AsyncMock(), AsyncMock()
        dead.send_json.side_effect = RuntimeError("socket closed")
        await hub.connect(1, dead)
        await hub.connect(1, alive)

        assert await hub.publish_to_user(1, "document:uploaded", {"documentId": 1}) == 1
        assert hub.connection_count == 1
        assert await hub.publish_to_user(1, "document:uploaded", {"documentId": 2}) == 1
        assert dead.send_json.await_count == 1


class TestNotificationSocket:
    def _token(self, client, email):
        r = client.post("/api/auth/register", json={
            "email": email,
            "password": "secret-password",
            "firstName": "Test",
            "lastName": "User",
        })
        return r.json()["token"]

    def _auth(self, token):
        return {"Authorization": f"Bearer {token}"}

    def test_rejects_missing_token(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/api/ws"):
                pass
        assert exc_info.value.code == 1008

    def test_rejects_bad_token(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/api/ws?token=garbage"):
                pass

    def test_owner_receives_document_events(self, client):
        token = self._token(client, "alice@example.com")
        h = self._auth(token)
        category_id = client.post("/api/categories", json={"name": "Reports"}, headers=h).json()["id"]

        with client.websocket_connect(f"/api/ws?token={token}") as ws:
            doc_id = client.post(
                "/api/documents/upload",
                files={"file": ("a.txt", b"hello", "text/plain")},
                data={"name": "Notes", "categoryId": str(category_id)},
                headers=h,
            ).json()["documentId"]
            uploaded = ws.receive_json()

            client.put(f"/api/documents/{doc_id}", json={"description": "v2"}, headers=h)
            updated = ws.receive_json()

            client.delete(f"/api/documents/{doc_id}", headers=h)
            deleted = ws.receive_json()

        assert uploaded["event"] == "document:uploaded"
        assert uploaded["data"]["documentId"] == doc_id
        assert uploaded["data"]["name"] == "Notes"
        assert uploaded["data"]["category"]["name"] == "Reports"

        assert updated["event"] == "document:updated"
        assert updated["data"]["description"] == "v2"

        assert deleted == {"event": "document:deleted", "data": {"documentId": doc_id}}

    def test_bearer_header_handshake(self, client):
        token = self._token(client, "alice@example.com")
        with client.websocket_connect("/api/ws", headers=self._auth(token)) as ws:
            client.post("/api/categories", json={"name": "Images"}, headers=self._auth(token))
            message = ws.receive_json()
        assert message["event"] == "category:created"

    def test_lowercase_bearer_handshake(self, client):
        token = self._token(client, "alice@example.com")
        with client.websocket_connect("/api/ws", headers={"Authorization": f"bearer {token}"}) as ws:
            client.post("/api/categories", json={"name": "Images"}, headers=self._auth(token))
            message = ws.receive_json()
        assert message["event"] == "category:created"

    def test_inbound_frames_do_not_break_the_stream(self, client):
        token = self._token(client, "alice@example.com")
        with client.websocket_connect(f"/api/ws?token={token}") as ws:
            ws.send_bytes(b"\x00\x01")
            ws.send_text("ping")
            client.post("/api/categories", json={"name": "Reports"}, headers=self._auth(token))
            first = ws.receive_json()

            ws.send_bytes(b"\xff")
            client.post("/api/categories", json={"name": "Invoices"}, headers=self._auth(token))
            second = ws.receive_json()

        assert first["data"]["name"] == "Reports"
        assert second["data"]["name"] == "Invoices"

    def test_category_created_reaches_everyone(self, client):
        alice = self._token(client, "alice@example.com")
        bob = self._token(client, "bob@example.com")

        with client.websocket_connect(f"/api/ws?token={bob}") as ws:
            client.post("/api/categories", json={"name": "Invoices", "color": "#8B5CF6"}, headers=self._auth(alice))
            message = ws.receive_json()

        assert message["event"] == "category:created"
        assert message["data"]["name"] == "Invoices"
        assert message["data"]["color"] == "#8B5CF6"
