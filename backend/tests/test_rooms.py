"""Tests for room creation, joining, directory listing and role lookup endpoints."""
from tests.conftest import create_test_identity, create_test_room, join_test_room


class TestRoomCreate:
    """Room creation — creator becomes the sole admin."""

    def test_create_room(self, client):
        owner = create_test_identity("Owner")
        resp = client.post("/api/rooms/", json={"name": "  Alpha  "}, headers=owner["headers"])
        assert resp.status_code == 201
        data = resp.json()
        assert data["role"] == "admin"
        assert data["room"]["name"] == "Alpha"
        assert data["room"]["created_by"] == owner["user_id"]
        assert len(data["room"]["group_id"]) >= 32

    def test_group_ids_are_unique(self, client):
        owner = create_test_identity("Owner")
        first = create_test_room(client, owner, name="One")
        second = create_test_room(client, owner, name="Two")
        assert first["group_id"] != second["group_id"]

    def test_create_room_blank_name(self, client):
        owner = create_test_identity("Owner")
        resp = client.post("/api/rooms/", json={"name": "   "}, headers=owner["headers"])
        assert resp.status_code == 422
        assert client.get("/api/rooms/mine", headers=owner["headers"]).json() == []

    def test_create_room_requires_session(self, client):
        resp = client.post("/api/rooms/", json={"name": "Alpha"})
        assert resp.status_code == 401

    def test_create_room_requires_verified_email(self, client):
        unverified = create_test_identity("Pending", verified=False)
        resp = client.post("/api/rooms/", json={"name": "Alpha"}, headers=unverified["headers"])
        assert resp.status_code == 403


class TestRoomJoin:
    """Joining by group ID always grants member."""

    def test_join_room(self, client):
        owner = create_test_identity("Owner")
        guest = create_test_identity("Guest")
        room = create_test_room(client, owner, name="Alpha")

        resp = client.post("/api/rooms/join", json={"group_id": room["group_id"]}, headers=guest["headers"])
        assert resp.status_code == 201
        assert resp.json()["role"] == "member"
        assert resp.json()["room"]["id"] == room["id"]

    def test_join_unknown_group_id(self, client):
        guest = create_test_identity("Guest")
        resp = client.post("/api/rooms/join", json={"group_id": "no-such-room"}, headers=guest["headers"])
        assert resp.status_code == 404

    def test_join_twice_is_already_member(self, client):
        owner = create_test_identity("Owner")
        guest = create_test_identity("Guest")
        room = create_test_room(client, owner)
        join_test_room(client, guest, room["group_id"])

        resp = client.post("/api/rooms/join", json={"group_id": room["group_id"]}, headers=guest["headers"])
        assert resp.status_code == 409
        assert "already a member" in resp.json()["detail"]

    def test_creator_cannot_rejoin_own_room(self, client):
        owner = create_test_identity("Owner")
        room = create_test_room(client, owner)
        resp = client.post("/api/rooms/join", json={"group_id": room["group_id"]}, headers=owner["headers"])
        assert resp.status_code == 409
        role = client.get(f"/api/rooms/{room['id']}/role", headers=owner["headers"]).json()["role"]
        assert role == "admin"

    def test_join_blank_group_id(self, client):
        guest = create_test_identity("Guest")
        resp = client.post("/api/rooms/join", json={"group_id": " "}, headers=guest["headers"])
        assert resp.status_code == 422


class TestRoomDirectory:
    """GET /api/rooms/mine and role lookups."""

    def test_no_rooms_is_empty_list(self, client):
        loner = create_test_identity("Loner")
        resp = client.get("/api/rooms/mine", headers=loner["headers"])
        assert resp.status_code == 200
        assert resp.json() == []

    def test_lists_rooms_in_membership_order_with_roles(self, client):
        alice = create_test_identity("Alice")
        bob = create_test_identity("Bob")
        bobs_room = create_test_room(client, bob, name="Bob's")
        alices_room = create_test_room(client, alice, name="Alice's")
        join_test_room(client, alice, bobs_room["group_id"])

        listing = client.get("/api/rooms/mine", headers=alice["headers"]).json()
        assert [(entry["room"]["name"], entry["role"]) for entry in listing] == [
            ("Alice's", "admin"),
            ("Bob's", "member"),
        ]
        assert listing[0]["room"]["id"] == alices_room["id"]

    def test_role_lookup(self, client):
        owner = create_test_identity("Owner")
        guest = create_test_identity("Guest")
        outsider = create_test_identity("Outsider")
        room = create_test_room(client, owner)
        join_test_room(client, guest, room["group_id"])

        assert client.get(f"/api/rooms/{room['id']}/role", headers=owner["headers"]).json()["role"] == "admin"
        assert client.get(f"/api/rooms/{room['id']}/role", headers=guest["headers"]).json()["role"] == "member"
        assert client.get(f"/api/rooms/{room['id']}/role", headers=outsider["headers"]).status_code == 404
