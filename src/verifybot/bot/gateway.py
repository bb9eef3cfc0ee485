"""Discord implementation of the role gateway for one guild and one role."""

import asyncio

import aiohttp
import discord

from verifybot.core.errors import GatewayError, GuildNotFoundError, RoleNotFoundError
from verifybot.core.logging import get_logger
from verifybot.models.enums import BlockReason
from verifybot.verification.ports import GrantCheck

logger = get_logger(__name__)

GRANT_REASON = "Passed DM code verification"

# discord.py retries these internally, then lets them through unwrapped
TRANSPORT_ERRORS = (aiohttp.ClientError, OSError, asyncio.TimeoutError)


def gateway_error(exc: discord.HTTPException) -> GatewayError:
    """Wrap a discord.py HTTP failure, keeping the API error code for the user."""
    code = str(exc.code) if getattr(exc, "code", 0) else f"HTTP_{exc.status}"
    return GatewayError(exc.text or str(exc), code=code, details={"status": exc.status})


def transport_error(exc: BaseException) -> GatewayError:
    """Wrap a connection-level failure (reset, DNS, timeout) that never got an HTTP response."""
    return GatewayError(
        "Discord is unreachable",
        code="GATEWAY_UNAVAILABLE",
        details={"error": type(exc).__name__},
    )


class DiscordPrivilegeGateway:
    """Role checks and grants against a live guild."""

    def __init__(self, client: discord.Client, guild: discord.Guild, role: discord.Role):
        self.client = client
        self.guild = guild
        self.role = role

    @classmethod
    async def resolve(
        cls, client: discord.Client, guild_id: int, role_id: int
    ) -> "DiscordPrivilegeGateway":
        """
        Look up the guild and the verify role, cache first.

        Raises:
            GuildNotFoundError: Bot is not in the guild or it doesn't exist
            RoleNotFoundError: Verify role is missing from the guild
            GatewayError: Discord failed while fetching
        """
        guild = client.get_guild(guild_id)
        if guild is None:
            try:
                guild = await client.fetch_guild(guild_id)
            except (discord.NotFound, discord.Forbidden):
                raise GuildNotFoundError(guild_id) from None
            except discord.HTTPException as exc:
                raise gateway_error(exc) from exc
            except TRANSPORT_ERRORS as exc:
                raise transport_error(exc) from exc

        role = guild.get_role(role_id)
        if role is None:
            try:
                roles = await guild.fetch_roles()
            except discord.HTTPException as exc:
                raise gateway_error(exc) from exc
            except TRANSPORT_ERRORS as exc:
                raise transport_error(exc) from exc
            role = next((r for r in roles if r.id == role_id), None)
        if role is None:
            raise RoleNotFoundError(role_id)

        return cls(client, guild, role)

    async def _member(self, user_id: int) -> discord.Member:
        # Always fetch: the cache can lag behind a role we just added
        try:
            return await self.guild.fetch_member(user_id)
        except discord.HTTPException as exc:
            raise gateway_error(exc) from exc
        except TRANSPORT_ERRORS as exc:
            raise transport_error(exc) from exc

    async def has_privilege(self, user_id: int) -> bool:
        member = await self._member(user_id)
        return any(role.id == self.role.id for role in member.roles)

    async def grant_privilege(self, user_id: int) -> bool:
        member = await self._member(user_id)
        try:
            await member.add_roles(self.role, reason=GRANT_REASON)
        except discord.HTTPException as exc:
            logger.error(
                "gateway.grant_failed",
                user_id=str(user_id),
                guild_id=str(self.guild.id),
                status=exc.status,
                code=exc.code,
            )
            raise gateway_error(exc) from exc
        except TRANSPORT_ERRORS as exc:
            logger.error(
                "gateway.grant_failed",
                user_id=str(user_id),
                guild_id=str(self.guild.id),
                error=type(exc).__name__,
            )
            raise transport_error(exc) from exc
        return True

    async def can_grant(self) -> GrantCheck:
        me = self.guild.me
        if me is None:
            me = await self._member(self.client.user.id)

        if not me.guild_permissions.manage_roles:
            return GrantCheck(False, BlockReason.MISSING_PERMISSION)
        # Discord only lets a bot manage roles strictly below its top role
        if self.role.position >= me.top_role.position:
            return GrantCheck(False, BlockReason.ROLE_ORDER_TOO_HIGH)
        return GrantCheck(True)

    async def is_pending_admission(self, user_id: int) -> bool:
        member = await self._member(user_id)
        return bool(member.pending)
