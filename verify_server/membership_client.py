"""
Discord side of the bridge: role (marker) checks and mutations, direct messages,
the system-channel fallback, plus guild stats and role-hierarchy diagnostics for admins.
Talks to the Discord REST API with the bot token.
"""
from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)

PERMISSION_ADMINISTRATOR = 1 << 3
PERMISSION_MANAGE_ROLES = 1 << 28

MEMBERS_PAGE_SIZE = 1000


class MembershipError(Exception):
    """Transport failure or non-2xx response from Discord."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MembershipClient(Protocol):
    connected: bool

    async def has_marker(self, subject_id: str) -> bool: ...

    async def grant_marker(self, subject_id: str) -> None: ...

    async def revoke_marker(self, subject_id: str) -> None: ...

    async def notify(self, subject_id: str, message: dict[str, Any]) -> None: ...

    async def broadcast(self, message: dict[str, Any]) -> None: ...

    async def guild_stats(self) -> dict[str, Any]: ...

    async def permission_diagnostics(self) -> dict[str, Any]: ...


class DiscordMembershipClient:
    """
    Discord REST client bound to one guild and one role.
    `connected` reflects the last round trip: True after a successful call, False after a
    transport failure or a 401.
    """

    def __init__(
        self,
        bot_token: str,
        guild_id: str,
        role_id: str,
        api_url: str = "https://discord.com/api/v10",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.guild_id = guild_id
        self.role_id = role_id
        self.connected = False
        self.bot_user_id: str | None = None
        self._headers = {"Authorization": f"Bot {bot_token}"}
        self._own_client = client is None
        self._client = client or httpx.AsyncClient(base_url=api_url.rstrip("/"), timeout=timeout)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            r = await self._client.request(method, path, headers=self._headers, **kwargs)
        except httpx.HTTPError as e:
            self.connected = False
            raise MembershipError(f"Discord unreachable ({type(e).__name__})") from e
        if r.status_code == 401:
            self.connected = False
        else:
            self.connected = True
        if not r.is_success:
            try:
                detail = r.json().get("message", "")
            except (ValueError, AttributeError):
                detail = ""
            raise MembershipError(
                f"Discord {method} {path} returned {r.status_code}: {detail}".rstrip(": "),
                status_code=r.status_code,
            )
        return r

    @staticmethod
    def _json(r: httpx.Response, key: str | None = None) -> Any:
        """Decoded body (or one required key of it); a malformed 2xx payload is a MembershipError too."""
        try:
            data = r.json()
            return data if key is None else data[key]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise MembershipError(f"Unexpected Discord payload for {r.request.url.path}") from e

    def _role_path(self, subject_id: str) -> str:
        return f"/guilds/{self.guild_id}/members/{subject_id}/roles/{self.role_id}"

    async def connect(self) -> None:
        """Check the bot token once; sets `connected`."""
        me = self._json(await self._request("GET", "/users/@me"))
        if not isinstance(me, dict) or "id" not in me:
            raise MembershipError("Unexpected Discord payload for /users/@me")
        self.bot_user_id = str(me["id"])
        logger.info("Logged in to Discord as %s", me.get("username"))

    async def has_marker(self, subject_id: str) -> bool:
        r = await self._request("GET", f"/guilds/{self.guild_id}/members/{subject_id}")
        roles = self._json(r, "roles") or []
        if not isinstance(roles, list):
            raise MembershipError("Unexpected Discord payload for member roles")
        return self.role_id in roles

    async def grant_marker(self, subject_id: str) -> None:
        # 403 here usually means the bot's highest role sits below the target role
        await self._request("PUT", self._role_path(subject_id))
        logger.debug("Role %s added to %s", self.role_id, subject_id)

    async def revoke_marker(self, subject_id: str) -> None:
        await self._request("DELETE", self._role_path(subject_id))
        logger.debug("Role %s removed from %s", self.role_id, subject_id)

    async def notify(self, subject_id: str, message: dict[str, Any]) -> None:
        """Direct message. Fails (403) when the member does not accept DMs from server members."""
        r = await self._request("POST", "/users/@me/channels", json={"recipient_id": subject_id})
        channel_id = self._json(r, "id")
        await self._request("POST", f"/channels/{channel_id}/messages", json=message)

    async def broadcast(self, message: dict[str, Any]) -> None:
        """Post to the guild's system channel."""
        r = await self._request("GET", f"/guilds/{self.guild_id}")
        guild = self._json(r)
        channel_id = guild.get("system_channel_id") if isinstance(guild, dict) else None
        if not channel_id:
            raise MembershipError("Guild has no system channel")
        await self._request("POST", f"/channels/{channel_id}/messages", json=message)

    async def _roles(self) -> dict[str, dict[str, Any]]:
        roles = self._json(await self._request("GET", f"/guilds/{self.guild_id}/roles"))
        if not isinstance(roles, list):
            raise MembershipError("Unexpected Discord payload for guild roles")
        return {str(role["id"]): role for role in roles if isinstance(role, dict) and "id" in role}

    async def _count_marker_holders(self) -> int:
        """Walk the member list (requires the Server Members intent) and count role holders."""
        count = 0
        after = "0"
        while True:
            r = await self._request(
                "GET", f"/guilds/{self.guild_id}/members", params={"limit": MEMBERS_PAGE_SIZE, "after": after}
            )
            page = self._json(r)
            if not isinstance(page, list):
                raise MembershipError("Unexpected Discord payload for guild members")
            count += sum(1 for m in page if isinstance(m, dict) and self.role_id in (m.get("roles") or []))
            if len(page) < MEMBERS_PAGE_SIZE:
                return count
            try:
                after = page[-1]["user"]["id"]
            except (KeyError, TypeError) as e:
                raise MembershipError("Unexpected Discord payload for guild members") from e

    async def guild_stats(self) -> dict[str, Any]:
        """Role presence, verified and total member counts, verification rate (percent)."""
        guild = self._json(await self._request("GET", f"/guilds/{self.guild_id}", params={"with_counts": "true"}))
        if not isinstance(guild, dict):
            raise MembershipError("Unexpected Discord payload for guild")
        role_found = self.role_id in await self._roles()
        verified = await self._count_marker_holders() if role_found else 0
        total = guild.get("approximate_member_count") or 0
        return {
            "guild": guild.get("name"),
            "roleFound": role_found,
            "verifiedMembers": verified,
            "totalMembers": total,
            "verificationRate": round(verified / total * 100, 1) if total else 0.0,
        }

    async def permission_diagnostics(self) -> dict[str, Any]:
        """
        Role hierarchy check behind most grant failures: the bot needs Manage Roles (or Administrator)
        and a highest role positioned above the 42 role.
        """
        if self.bot_user_id is None:
            await self.connect()
        member = self._json(await self._request("GET", f"/guilds/{self.guild_id}/members/{self.bot_user_id}"))
        if not isinstance(member, dict):
            raise MembershipError("Unexpected Discord payload for bot member")
        roles = await self._roles()
        # @everyone shares the guild id and applies to every member
        bot_role_ids = [self.guild_id] + [str(rid) for rid in (member.get("roles") or [])]
        bot_roles = [roles[rid] for rid in bot_role_ids if rid in roles]
        permissions = 0
        for role in bot_roles:
            permissions |= int(role.get("permissions") or 0)
        highest = max(bot_roles, key=lambda role: role.get("position", 0), default=None)
        target = roles.get(self.role_id)
        highest_position = highest.get("position", 0) if highest else 0
        return {
            "botId": self.bot_user_id,
            "botHighestRole": highest.get("name") if highest else None,
            "botHighestRolePosition": highest_position,
            "manageRoles": bool(permissions & (PERMISSION_MANAGE_ROLES | PERMISSION_ADMINISTRATOR)),
            "administrator": bool(permissions & PERMISSION_ADMINISTRATOR),
            "targetRoleFound": target is not None,
            "targetRoleName": target.get("name") if target else None,
            "targetRolePosition": target.get("position") if target else None,
            "canManageTargetRole": target is not None and highest_position > target.get("position", 0),
        }

    async def aclose(self) -> None:
        if self._own_client:
            await self._client.aclose()
