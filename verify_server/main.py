"""
Verification server: OAuth2 callback, rules acceptance, health, internal API.
GET /auth/callback, /auth/rules/accept, /auth/rules/decline, /health. Port 3000 by default.
Serve with `uvicorn verify_server.main:create_app --factory` or `python -m verify_server.main`.
"""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse

from verify_server import config
from verify_server.identity_client import FortyTwoClient
from verify_server.internal_api import router as internal_router
from verify_server.logging_setup import configure_logging
from verify_server.membership_client import DiscordMembershipClient, MembershipError
from verify_server.outcomes import Outcome, VerificationResult
from verify_server.pages import render_page
from verify_server.process_info import memory_usage, process_uptime
from verify_server.registry import PendingRegistry
from verify_server.service import VerificationService
from verify_server.sweeper import run_sweeper

logger = logging.getLogger(__name__)


def create_app(
    service: VerificationService | None = None,
    *,
    internal_api_token: str | None = None,
    sweep_interval: float = config.SWEEP_INTERVAL_SECONDS,
    max_age: float = config.VERIFICATION_MAX_AGE_SECONDS,
) -> FastAPI:
    """Build the app. Without a service, one is wired from config with real clients."""
    if service is None:
        configure_logging(config.DEBUG)
        identity = FortyTwoClient(
            config.FORTYTWO_CLIENT_ID,
            config.FORTYTWO_CLIENT_SECRET,
            api_url=config.FORTYTWO_API_URL,
            timeout=config.HTTP_TIMEOUT_SECONDS,
        )
        membership = DiscordMembershipClient(
            config.DISCORD_TOKEN,
            config.DISCORD_GUILD_ID,
            config.DISCORD_42_ROLE_ID,
            api_url=config.DISCORD_API_URL,
            timeout=config.HTTP_TIMEOUT_SECONDS,
        )
        service = VerificationService(
            PendingRegistry(),
            identity,
            membership,
            api_url=config.FORTYTWO_API_URL,
            client_id=config.FORTYTWO_CLIENT_ID,
            redirect_uri=config.FORTYTWO_REDIRECT_URI,
            scope=config.FORTYTWO_SCOPE,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Check the Discord token, run the sweeper; stop the sweeper and close clients on shutdown."""
        connect = getattr(service.membership, "connect", None)
        if connect is not None:
            try:
                await connect()
            except MembershipError as e:
                logger.warning("Discord login check failed: %s", e)
        sweeper = asyncio.create_task(run_sweeper(service.registry, sweep_interval, max_age))
        yield
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
        for client in (service.identity, service.membership):
            aclose = getattr(client, "aclose", None)
            if aclose is not None:
                await aclose()

    app = FastAPI(title="42 Verification Server", version="1.0.0", lifespan=lifespan)
    app.state.service = service
    app.state.identity = service.identity
    app.state.membership = service.membership
    app.state.internal_api_token = config.INTERNAL_API_TOKEN if internal_api_token is None else internal_api_token
    app.include_router(internal_router, tags=["internal"])

    async def _guarded(coro, name: str) -> VerificationResult:
        # Nothing escapes a browser-facing handler; unexpected faults look like a dead link
        try:
            return await coro
        except Exception:
            logger.exception("Unexpected error in %s", name)
            return VerificationResult(Outcome.EXPIRED)

    @app.get("/health")
    def health(request: Request):
        """Liveness: Discord connectivity, pending verifications, uptime, memory."""
        return {
            "status": "ok",
            "bot": "connected" if request.app.state.membership.connected else "disconnected",
            "pendingVerifications": request.app.state.service.registry.size(),
            "uptime": process_uptime(),
            "memory": memory_usage(),
        }

    @app.get("/auth/callback", response_class=HTMLResponse)
    async def callback(request: Request, code: str | None = None, state: str | None = None, error: str | None = None):
        """Intranet redirect: ?code=...&state=... or ?error=...&state=..."""
        result = await _guarded(request.app.state.service.receive_identity_callback(state, code, error), "callback")
        return render_page(result)

    @app.get("/auth/rules/accept", response_class=HTMLResponse)
    async def rules_accept(request: Request, state: str | None = None):
        result = await _guarded(request.app.state.service.accept(state), "rules accept")
        return render_page(result)

    @app.get("/auth/rules/decline", response_class=HTMLResponse)
    async def rules_decline(request: Request, state: str | None = None):
        result = await _guarded(request.app.state.service.decline(state), "rules decline")
        return render_page(result)

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "verify_server.main:create_app",
        factory=True,
        host=config.HOST,
        port=config.PORT,
    )
