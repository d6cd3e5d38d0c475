"""
Verification state machine.

join -> record created (AWAITING_IDENTITY) -> intranet redirect -> callback:
code exchanged, claims checked -> AWAITING_CONSENT -> accept (role granted) or decline.
Every terminal outcome removes the record; the sweeper removes abandoned ones.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from verify_server import messages
from verify_server.eligibility import is_eligible, summarize_claims
from verify_server.identity_client import IdentityProviderError
from verify_server.membership_client import MembershipClient, MembershipError
from verify_server.outcomes import Outcome, VerificationResult
from verify_server.registry import PendingRegistry, Step, VerificationRecord
from verify_server.state_token import build_authorize_url, generate_state

logger = logging.getLogger(__name__)


class IdentityClient(Protocol):
    async def exchange_code_for_token(self, code: str, redirect_uri: str) -> str: ...

    async def fetch_claims(self, access_token: str) -> dict[str, Any]: ...


@dataclass(frozen=True)
class StartedVerification:
    state: str
    authorize_url: str
    notified: bool


class VerificationService:
    def __init__(
        self,
        registry: PendingRegistry,
        identity: IdentityClient,
        membership: MembershipClient,
        *,
        api_url: str,
        client_id: str,
        redirect_uri: str,
        scope: str = "public",
    ) -> None:
        self.registry = registry
        self.identity = identity
        self.membership = membership
        self.api_url = api_url
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.scope = scope
        # States whose code exchange is awaiting the intranet
        self._exchanging: set[str] = set()

    async def start(self, subject_id: str, subject_label: str) -> StartedVerification | None:
        """
        Open a verification for a member who just joined. Returns None when the member
        already has the role or their roles cannot be read.
        """
        try:
            if await self.membership.has_marker(subject_id):
                logger.info("%s already has the 42 role, skipping verification", subject_label)
                return None
        except MembershipError as e:
            logger.warning("Could not read roles of %s: %s", subject_label, e)
            return None

        state = generate_state()
        self.registry.put(
            state,
            VerificationRecord(
                state=state,
                subject_id=subject_id,
                subject_label=subject_label,
                created_at=self.registry.clock(),
            ),
        )
        logger.debug("Verification started for %s (%d pending)", subject_label, self.registry.size())

        url = build_authorize_url(
            api_url=self.api_url,
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            scope=self.scope,
            state=state,
        )

        notified = True
        try:
            await self.membership.notify(subject_id, messages.welcome_message(subject_id, url))
            logger.info("Sent verification link to %s", subject_label)
        except MembershipError as e:
            notified = False
            logger.warning("Could not send DM to %s: %s", subject_label, e)
            try:
                await self.membership.broadcast(messages.dm_fallback_message(subject_id))
            except MembershipError as e2:
                logger.warning("System channel fallback for %s failed: %s", subject_label, e2)
        return StartedVerification(state=state, authorize_url=url, notified=notified)

    async def receive_identity_callback(
        self,
        state: str | None,
        code: str | None,
        error: str | None = None,
    ) -> VerificationResult:
        """Handle the intranet redirect. Consent is required before any role is granted."""
        if error:
            logger.debug("Authorization error from intranet: %s", error)
            return VerificationResult(Outcome.PROVIDER_ERROR, detail=error)
        if not code or not state:
            logger.debug("Callback missing code or state")
            return VerificationResult(Outcome.EXPIRED)

        record = self.registry.get(state)
        if record is None or record.step != Step.AWAITING_IDENTITY or state in self._exchanging:
            logger.debug("Callback for unknown or already handled state")
            return VerificationResult(Outcome.EXPIRED)

        self._exchanging.add(state)
        try:
            access_token = await self.identity.exchange_code_for_token(code, self.redirect_uri)
            claims = await self.identity.fetch_claims(access_token)
        except IdentityProviderError as e:
            logger.warning("Identity confirmation failed for %s: %s", record.subject_label, e)
            self.registry.delete(state)
            return VerificationResult(Outcome.PROVIDER_ERROR, detail=str(e))
        finally:
            self._exchanging.discard(state)

        if not is_eligible(claims):
            logger.info("%s rejected: not a current 42 student", record.subject_label)
            self.registry.delete(state)
            return VerificationResult(Outcome.INELIGIBLE)

        # Swept while the exchange was in flight
        if self.registry.get(state) is not record:
            return VerificationResult(Outcome.EXPIRED)

        summary = summarize_claims(claims)
        record.claims = claims
        record.step = Step.AWAITING_CONSENT
        logger.info("%s verified as %s, awaiting rules acceptance", record.subject_label, summary["login"])
        return VerificationResult(Outcome.CONSENT_REQUIRED, state=state, claims=summary)

    async def accept(self, state: str | None) -> VerificationResult:
        """Rules accepted: grant the role once. The record is consumed before the grant call."""
        record = self.registry.pop(state, Step.AWAITING_CONSENT) if state else None
        if record is None:
            logger.debug("Accept for unknown or already handled state")
            return VerificationResult(Outcome.EXPIRED)

        try:
            await self.membership.grant_marker(record.subject_id)
        except MembershipError as e:
            # Usually the bot's role is below the 42 role or lacks Manage Roles
            logger.error("Failed to assign 42 role to %s: %s", record.subject_label, e)
            return VerificationResult(Outcome.GRANT_FAILED)

        summary = summarize_claims(record.claims or {})
        try:
            await self.membership.notify(record.subject_id, messages.success_message(summary))
        except MembershipError as e:
            logger.info("Could not send success DM to %s: %s", record.subject_label, e)

        logger.info("Verification complete for %s (%d pending)", record.subject_label, self.registry.size())
        return VerificationResult(Outcome.SUCCESS, claims=summary)

    async def decline(self, state: str | None) -> VerificationResult:
        record = self.registry.pop(state, Step.AWAITING_CONSENT) if state else None
        if record is None:
            logger.debug("Decline for unknown or already handled state")
            return VerificationResult(Outcome.EXPIRED)
        logger.info("%s declined the rules", record.subject_label)
        return VerificationResult(Outcome.DECLINED)

    def sweep_expired(self, max_age: float) -> int:
        return self.registry.sweep(max_age)
