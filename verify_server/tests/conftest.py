"""
Pytest configuration for verify_server. Fake intranet and Discord clients record calls; no network.
"""
import pytest
from fastapi.testclient import TestClient

from verify_server.identity_client import IdentityProviderError
from verify_server.main import create_app
from verify_server.membership_client import MembershipError
from verify_server.registry import PendingRegistry
from verify_server.service import VerificationService

INTERNAL_TOKEN = "test-internal-token"


def student_claims(**overrides):
    """A /v2/me payload that passes every eligibility rule."""
    claims = {
        "id": 4242,
        "login": "jdoe",
        "email": "jdoe@student.42.fr",
        "displayname": "Jane Doe",
        "staff?": False,
        "active?": True,
        "pool_year": "2023",
        "pool_month": "july",
        "cursus_users": [{"level": 7.42, "cursus": {"id": 21, "name": "42cursus"}}],
        "campus": [{"id": 1, "name": "Paris"}],
    }
    claims.update(overrides)
    return claims


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeIdentity:
    def __init__(self):
        self.claims = student_claims()
        self.users_by_login = {}
        self.exchange_error = None
        self.claims_error = None
        self.exchanged = []

    async def exchange_code_for_token(self, code, redirect_uri):
        self.exchanged.append((code, redirect_uri))
        if self.exchange_error:
            raise IdentityProviderError(self.exchange_error, status_code=401)
        return f"token-for-{code}"

    async def fetch_claims(self, access_token):
        if self.claims_error:
            raise IdentityProviderError(self.claims_error, status_code=500)
        return self.claims

    async def fetch_user_by_login(self, login):
        if login not in self.users_by_login:
            raise IdentityProviderError("Not Found", status_code=404)
        return self.users_by_login[login]


class FakeMembership:
    def __init__(self):
        self.connected = True
        self.markers = set()
        self.granted = []
        self.revoked = []
        self.notified = []
        self.broadcasts = []
        self.fail_grant = False
        self.fail_notify = False
        self.fail_broadcast = False
        self.fail_lookup = False
        self.total_members = 10
        self.diagnostics = {
            "botId": "B1",
            "botHighestRole": "Bot",
            "botHighestRolePosition": 5,
            "manageRoles": True,
            "administrator": False,
            "targetRoleFound": True,
            "targetRoleName": "42",
            "targetRolePosition": 2,
            "canManageTargetRole": True,
        }

    async def has_marker(self, subject_id):
        if self.fail_lookup:
            raise MembershipError("Unknown Member", status_code=404)
        return subject_id in self.markers

    async def grant_marker(self, subject_id):
        self.granted.append(subject_id)
        if self.fail_grant:
            raise MembershipError("Missing Permissions", status_code=403)
        self.markers.add(subject_id)

    async def revoke_marker(self, subject_id):
        self.revoked.append(subject_id)
        self.markers.discard(subject_id)

    async def notify(self, subject_id, message):
        self.notified.append((subject_id, message))
        if self.fail_notify:
            raise MembershipError("Cannot send messages to this user", status_code=403)

    async def broadcast(self, message):
        self.broadcasts.append(message)
        if self.fail_broadcast:
            raise MembershipError("Guild has no system channel")

    async def guild_stats(self):
        if self.fail_lookup:
            raise MembershipError("Discord unreachable (ConnectError)")
        total = self.total_members
        return {
            "guild": "42 Queers",
            "roleFound": True,
            "verifiedMembers": len(self.markers),
            "totalMembers": total,
            "verificationRate": round(len(self.markers) / total * 100, 1) if total else 0.0,
        }

    async def permission_diagnostics(self):
        if self.fail_lookup:
            raise MembershipError("Discord unreachable (ConnectError)")
        return dict(self.diagnostics)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return PendingRegistry(clock=clock)


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
def membership():
    return FakeMembership()


@pytest.fixture
def service(registry, identity, membership):
    return VerificationService(
        registry,
        identity,
        membership,
        api_url="https://intra.example",
        client_id="client-42",
        redirect_uri="http://127.0.0.1:3000/auth/callback",
        scope="public",
    )


@pytest.fixture
def client(service):
    """TestClient without the lifespan (no sweeper task)."""
    return TestClient(create_app(service, internal_api_token=INTERNAL_TOKEN))


@pytest.fixture
def make_claims():
    return student_claims


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {INTERNAL_TOKEN}"}
