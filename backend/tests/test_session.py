"""Tests for the session oracle, per-client session state and redirect gates."""
from app.routing import redirect_for
from app.session import SessionEvent, SessionState, TokenSessionOracle
from tests.conftest import create_test_identity, make_identity, token_for

oracle = TokenSessionOracle(secret="test-secret-for-session-oracle-tests")


class TestTokenSessionOracle:

    def test_round_trip_claims(self):
        token = oracle.issue_token("u1", "u1@example.com", email_verified=True, full_name="User One")
        identity = oracle.resolve(token)
        assert identity.user_id == "u1"
        assert identity.email_verified is True
        assert identity.full_name == "User One"

    def test_rejects_missing_bad_and_expired_tokens(self):
        assert oracle.resolve(None) is None
        assert oracle.resolve("not-a-jwt") is None
        assert TokenSessionOracle(secret="another-secret-for-session-oracle-tests").resolve(oracle.issue_token("u1", "u1@example.com")) is None
        assert oracle.resolve(oracle.issue_token("u1", "u1@example.com", ttl_minutes=-1)) is None


class TestSessionState:

    def test_init_distinguishes_states(self):
        state = SessionState(oracle)
        assert state.loading is True
        state.init(None)
        assert (state.loading, state.is_authenticated, state.error) == (False, False, None)

        state.init(oracle.issue_token("u1", "u1@example.com"))
        assert state.is_authenticated and not state.is_verified

        state.init("garbage")
        assert not state.is_authenticated
        assert state.error is not None

    def test_events_reach_listeners_until_unsubscribed(self):
        state = SessionState(oracle)
        state.init(None)
        seen = []
        unsubscribe = state.subscribe(lambda event, identity: seen.append((event, identity and identity.user_id)))

        state.apply(SessionEvent.signed_in, oracle.issue_token("u1", "u1@example.com", email_verified=True))
        state.apply(SessionEvent.token_refreshed, oracle.issue_token("u1", "u1@example.com", email_verified=True))
        state.apply(SessionEvent.signed_out)
        unsubscribe()
        state.apply(SessionEvent.signed_in, oracle.issue_token("u2", "u2@example.com"))

        assert seen == [
            (SessionEvent.signed_in, "u1"),
            (SessionEvent.token_refreshed, "u1"),
            (SessionEvent.signed_out, None),
        ]

    def test_teardown_clears_identity_and_listeners(self):
        state = SessionState(oracle)
        state.init(oracle.issue_token("u1", "u1@example.com"))
        seen = []
        state.subscribe(lambda event, identity: seen.append(event))
        state.teardown()
        assert state.identity is None
        state.apply(SessionEvent.signed_out)
        assert seen == []


class TestRedirectGates:

    def test_unauthenticated_chat_goes_to_login(self):
        assert redirect_for("/dashboard", None) == "/login"
        assert redirect_for("/dashboard/rooms", None) == "/login"

    def test_unverified_chat_goes_to_verify_email(self):
        assert redirect_for("/dashboard", make_identity("Pending", verified=False)) == "/verify-email"

    def test_authenticated_login_goes_to_chat(self):
        identity = make_identity("Alice")
        assert redirect_for("/login", identity) == "/dashboard"
        assert redirect_for("/signup", identity) == "/dashboard"
        assert redirect_for("/dashboard", identity) is None

    def test_other_paths_pass(self):
        assert redirect_for("/login", None) is None
        assert redirect_for("/verify-email", make_identity("Pending", verified=False)) is None
        assert redirect_for("/dashboards", None) is None


class TestPageMiddleware:

    def test_pages_follow_session_cookie(self, client):
        resp = client.get("/dashboard", follow_redirects=False)
        assert resp.status_code == 307
        assert resp.headers["location"] == "/login"

        pending = create_test_identity("Pending", verified=False)
        client.cookies.set("session_token", pending["token"])
        resp = client.get("/dashboard", follow_redirects=False)
        assert resp.headers["location"] == "/verify-email"

        alice = make_identity("Alice")
        client.cookies.set("session_token", token_for(alice))
        assert client.get("/dashboard", follow_redirects=False).status_code == 200
        resp = client.get("/login", follow_redirects=False)
        assert resp.status_code == 307
        assert resp.headers["location"] == "/dashboard"

    def test_profile_created_on_first_request(self, client):
        alice = create_test_identity("Alice")
        resp = client.get("/api/profiles/me", headers=alice["headers"])
        assert resp.status_code == 200
        assert resp.json()["email"] == alice["email"]
        assert resp.json()["email_verified"] is True

        resp = client.patch("/api/profiles/me", json={"full_name": "Alice A."}, headers=alice["headers"])
        assert resp.json()["full_name"] == "Alice A."

    def test_api_requires_token(self, client):
        assert client.get("/api/profiles/me").status_code == 401
