"""Policy table, route-prefix selection and quota key derivation."""

from types import SimpleNamespace
from typing import Optional

import pytest
from starlette.requests import Request

from expense_tracker.auth.identity import Identity
from expense_tracker.auth.tokens import issue_token
from expense_tracker.config import Settings
from expense_tracker.ratelimit.policies import (
    AI,
    AUTH,
    GENERAL,
    UPLOAD,
    build_policies,
    client_ip,
    key_by_identity_or_ip,
    key_by_ip,
    select_policy,
)


def make_request(
    path: str = "/",
    headers: Optional[dict] = None,
    peer: str = "10.0.0.7",
    trust_proxy_headers: bool = False,
) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": (peer, 51234),
        "app": SimpleNamespace(state=SimpleNamespace(trust_proxy_headers=trust_proxy_headers)),
        "state": {},
    }
    return Request(scope)


@pytest.fixture
def policies():
    return build_policies(Settings())


class TestPolicyTable:

    def test_fixed_policies(self, policies):
        auth = policies[AUTH]
        assert (auth.points, auth.duration, auth.block_duration) == (5, 900, 900)
        assert (policies[AI].points, policies[AI].duration) == (20, 3600)
        assert (policies[UPLOAD].points, policies[UPLOAD].duration) == (10, 3600)

    def test_general_policy_is_configurable(self):
        policies = build_policies(Settings(rate_limit_max_requests=7, rate_limit_window=30))
        assert (policies[GENERAL].points, policies[GENERAL].duration) == (7, 30)
        assert policies[GENERAL].block_duration == 0


class TestSelectPolicy:

    @pytest.mark.parametrize(
        "path, expected",
        [
            ("/api/auth/login", AUTH),
            ("/api/auth/password", AUTH),
            ("/api/ai/categorize", AI),
            ("/api/upload/receipt", UPLOAD),
            ("/api/expenses", GENERAL),
            ("/api/categories/popular", GENERAL),
            ("/api/authors", GENERAL),
            ("/", GENERAL),
        ],
    )
    def test_route_prefixes(self, policies, path, expected):
        assert select_policy(path, policies).name == expected

    def test_longest_prefix_wins(self, policies):
        prefixes = (("/api/", AUTH), ("/api/ai/", AI))
        assert select_policy("/api/ai/scan-receipt", policies, prefixes).name == AI
        assert select_policy("/api/expenses", policies, prefixes).name == AUTH


class TestKeys:

    def test_client_ip_uses_peer_by_default(self):
        request = make_request(headers={"X-Forwarded-For": "203.0.113.5"})
        assert client_ip(request) == "10.0.0.7"

    def test_client_ip_trusts_first_forwarded_hop(self):
        request = make_request(headers={"X-Forwarded-For": "203.0.113.5, 10.0.0.1"})
        assert client_ip(request, trust_proxy_headers=True) == "203.0.113.5"

    def test_key_by_ip_reads_app_setting(self):
        request = make_request(
            headers={"X-Forwarded-For": "203.0.113.5"}, trust_proxy_headers=True
        )
        assert key_by_ip(request) == "ip:203.0.113.5"

    def test_identity_key_from_verified_credential(self):
        request = make_request(headers={"Authorization": f"Bearer {issue_token(7)}"})
        assert key_by_identity_or_ip(request) == "user:7"

    def test_identity_key_from_resolved_user(self):
        request = make_request()
        request.state.user = Identity(id=3, email="c@example.com", name="Cy")
        assert key_by_identity_or_ip(request) == "user:3"

    def test_bad_credential_falls_back_to_ip(self):
        request = make_request(headers={"Authorization": "Bearer not-a-token"})
        assert key_by_identity_or_ip(request) == "ip:10.0.0.7"

    def test_anonymous_falls_back_to_ip(self):
        assert key_by_identity_or_ip(make_request()) == "ip:10.0.0.7"
