"""Tests for the verification state machine (start, identity callback, accept, decline, expiry)."""
import asyncio
import re
from urllib.parse import parse_qs, urlparse

from verify_server.outcomes import Outcome
from verify_server.registry import Step


def _start(service, subject_id="U1"):
    return asyncio.run(service.start(subject_id, f"user#{subject_id}"))


def _confirm(service, state, code="abc"):
    return asyncio.run(service.receive_identity_callback(state, code))


# --- Start ---


def test_start_creates_one_record_and_sends_link(service, registry, membership):
    started = _start(service)
    assert started is not None
    assert registry.size() == 1
    assert re.match(r"^[0-9a-f]{64}$", started.state)
    record = registry.get(started.state)
    assert record.subject_id == "U1"
    assert record.step == Step.AWAITING_IDENTITY

    params = parse_qs(urlparse(started.authorize_url).query)
    assert params["state"] == [started.state]
    assert params["client_id"] == ["client-42"]
    assert params["response_type"] == ["code"]

    assert len(membership.notified) == 1
    subject_id, message = membership.notified[0]
    assert subject_id == "U1"
    assert started.authorize_url in str(message)
    assert started.notified is True
    assert membership.broadcasts == []


def test_start_skips_member_with_role(service, registry, membership):
    membership.markers.add("U1")
    assert _start(service) is None
    assert registry.size() == 0
    assert membership.notified == []


def test_start_skips_when_roles_cannot_be_read(service, registry, membership):
    membership.fail_lookup = True
    assert _start(service) is None
    assert registry.size() == 0


def test_start_dm_failure_falls_back_to_broadcast(service, registry, membership):
    membership.fail_notify = True
    started = _start(service)
    assert started.notified is False
    assert registry.size() == 1
    assert len(membership.broadcasts) == 1
    # The public fallback never carries the link
    assert started.state not in str(membership.broadcasts[0])


def test_start_broadcast_failure_keeps_record(service, registry, membership):
    membership.fail_notify = True
    membership.fail_broadcast = True
    started = _start(service)
    assert registry.get(started.state) is not None


def test_same_subject_can_start_twice(service, registry):
    a = _start(service)
    b = _start(service)
    assert a.state != b.state
    assert registry.size() == 2


# --- Identity callback ---


def test_callback_moves_record_to_consent(service, registry, identity):
    started = _start(service)
    result = _confirm(service, started.state)
    assert result.outcome == Outcome.CONSENT_REQUIRED
    assert result.state == started.state
    record = registry.get(started.state)
    assert record.step == Step.AWAITING_CONSENT
    assert record.claims["login"] == "jdoe"
    assert identity.exchanged == [("abc", "http://127.0.0.1:3000/auth/callback")]


def test_callback_unknown_state_leaves_registry_untouched(service, registry, identity):
    started = _start(service)
    result = _confirm(service, "0" * 64)
    assert result.outcome == Outcome.EXPIRED
    assert registry.size() == 1
    assert registry.get(started.state).step == Step.AWAITING_IDENTITY
    assert identity.exchanged == []


def test_callback_missing_params(service, registry):
    started = _start(service)
    assert asyncio.run(service.receive_identity_callback(started.state, None)).outcome == Outcome.EXPIRED
    assert asyncio.run(service.receive_identity_callback(None, "abc")).outcome == Outcome.EXPIRED
    assert registry.size() == 1


def test_callback_provider_error_param_does_not_mutate(service, registry):
    started = _start(service)
    result = asyncio.run(service.receive_identity_callback(started.state, None, error="access_denied"))
    assert result.outcome == Outcome.PROVIDER_ERROR
    assert result.detail == "access_denied"
    assert registry.get(started.state) is not None


def test_callback_exchange_failure_deletes_record(service, registry, identity, membership):
    identity.exchange_error = "invalid_grant"
    started = _start(service)
    result = _confirm(service, started.state)
    assert result.outcome == Outcome.PROVIDER_ERROR
    assert result.detail == "invalid_grant"
    assert registry.get(started.state) is None
    assert membership.granted == []


def test_callback_claims_failure_deletes_record(service, registry, identity):
    identity.claims_error = "HTTP 500"
    started = _start(service)
    assert _confirm(service, started.state).outcome == Outcome.PROVIDER_ERROR
    assert registry.size() == 0


def test_callback_staff_is_ineligible(service, registry, identity, membership, make_claims):
    identity.claims = make_claims(**{"staff?": True})
    started = _start(service)
    result = _confirm(service, started.state)
    assert result.outcome == Outcome.INELIGIBLE
    assert registry.get(started.state) is None
    assert membership.granted == []


def test_callback_replay_after_consent_is_expired(service, registry, identity):
    started = _start(service)
    _confirm(service, started.state)
    assert _confirm(service, started.state).outcome == Outcome.EXPIRED
    assert len(identity.exchanged) == 1
    assert registry.get(started.state).step == Step.AWAITING_CONSENT


def test_record_swept_during_exchange_is_expired(service, registry, identity):
    started = _start(service)

    async def slow_fetch(access_token):
        registry.delete(started.state)
        return identity.claims

    identity.fetch_claims = slow_fetch
    assert _confirm(service, started.state).outcome == Outcome.EXPIRED
    assert registry.size() == 0


def test_concurrent_callbacks_exchange_once(service, registry, identity):
    started = _start(service)
    original = identity.exchange_code_for_token

    async def slow_exchange(code, redirect_uri):
        await asyncio.sleep(0.01)
        return await original(code, redirect_uri)

    identity.exchange_code_for_token = slow_exchange

    async def both():
        return await asyncio.gather(
            service.receive_identity_callback(started.state, "abc"),
            service.receive_identity_callback(started.state, "abc"),
        )

    outcomes = sorted(r.outcome.value for r in asyncio.run(both()))
    assert outcomes == sorted([Outcome.CONSENT_REQUIRED.value, Outcome.EXPIRED.value])
    assert len(identity.exchanged) == 1


# --- Accept / Decline ---


def test_accept_grants_once_and_consumes_record(service, registry, membership):
    started = _start(service)
    _confirm(service, started.state)
    result = asyncio.run(service.accept(started.state))
    assert result.outcome == Outcome.SUCCESS
    assert membership.granted == ["U1"]
    # welcome DM + success DM
    assert len(membership.notified) == 2
    assert registry.get(started.state) is None


def test_accept_replay_is_expired(service, membership):
    started = _start(service)
    _confirm(service, started.state)
    asyncio.run(service.accept(started.state))
    assert asyncio.run(service.accept(started.state)).outcome == Outcome.EXPIRED
    assert asyncio.run(service.decline(started.state)).outcome == Outcome.EXPIRED
    assert membership.granted == ["U1"]
    assert membership.revoked == []


def test_double_accept_concurrently_grants_once(service, membership):
    started = _start(service)
    _confirm(service, started.state)

    async def both():
        return await asyncio.gather(service.accept(started.state), service.accept(started.state))

    outcomes = sorted(r.outcome.value for r in asyncio.run(both()))
    assert outcomes == sorted([Outcome.SUCCESS.value, Outcome.EXPIRED.value])
    assert membership.granted == ["U1"]


def test_accept_before_identity_is_expired(service, registry, membership):
    started = _start(service)
    assert asyncio.run(service.accept(started.state)).outcome == Outcome.EXPIRED
    assert registry.get(started.state) is not None
    assert membership.granted == []


def test_accept_grant_failure_deletes_record(service, registry, membership):
    membership.fail_grant = True
    started = _start(service)
    _confirm(service, started.state)
    result = asyncio.run(service.accept(started.state))
    assert result.outcome == Outcome.GRANT_FAILED
    assert registry.get(started.state) is None
    assert len(membership.notified) == 1


def test_accept_success_dm_failure_is_not_fatal(service, registry, membership):
    started = _start(service)
    _confirm(service, started.state)
    membership.fail_notify = True
    assert asyncio.run(service.accept(started.state)).outcome == Outcome.SUCCESS
    assert registry.size() == 0


def test_decline_consumes_record_without_grant(service, registry, membership):
    started = _start(service)
    _confirm(service, started.state)
    assert asyncio.run(service.decline(started.state)).outcome == Outcome.DECLINED
    assert membership.granted == []
    assert registry.get(started.state) is None


def test_decline_missing_state(service):
    assert asyncio.run(service.decline(None)).outcome == Outcome.EXPIRED
    assert asyncio.run(service.accept(None)).outcome == Outcome.EXPIRED


# --- Expiry ---


def test_expired_record_callback_is_expired(service, registry, clock, identity):
    started = _start(service)
    clock.advance(601)
    assert service.sweep_expired(600) == 1
    assert _confirm(service, started.state).outcome == Outcome.EXPIRED
    assert identity.exchanged == []


def test_expired_consent_cannot_be_accepted(service, clock, membership):
    started = _start(service)
    _confirm(service, started.state)
    clock.advance(601)
    service.sweep_expired(600)
    assert asyncio.run(service.accept(started.state)).outcome == Outcome.EXPIRED
    assert membership.granted == []


def test_callback_campus_as_object_is_ineligible(service, registry, identity, make_claims):
    identity.claims = make_claims(campus={"id": 1, "name": "Paris"})
    started = _start(service)
    assert _confirm(service, started.state).outcome == Outcome.INELIGIBLE
    assert registry.size() == 0


def test_callback_string_cursus_still_reaches_consent(service, registry, identity, make_claims):
    identity.claims = make_claims(cursus_users=[{"cursus": "42cursus"}])
    started = _start(service)
    result = _confirm(service, started.state)
    assert result.outcome == Outcome.CONSENT_REQUIRED
    assert result.claims["cursus"] is None
    assert registry.get(started.state).step == Step.AWAITING_CONSENT
