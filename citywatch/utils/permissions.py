from typing import Optional

import arc
import hikari

from citywatch.core.types import BotConfig
from citywatch.utils.errors import PermissionError as CityWatchPermissionError

MODERATOR_PERMISSIONS = (
    hikari.Permissions.ADMINISTRATOR
    | hikari.Permissions.MANAGE_GUILD
    | hikari.Permissions.MANAGE_MESSAGES
    | hikari.Permissions.MODERATE_MEMBERS
)


def member_permissions(member: hikari.Member) -> hikari.Permissions:
    """Guild-level permissions granted by the member's cached roles"""
    if isinstance(member, hikari.InteractionMember):
        return member.permissions

    permissions = hikari.Permissions.NONE
    for role in member.get_roles():
        permissions |= role.permissions
    return permissions


def has_mod_permission(member: Optional[hikari.Member], moderator_role_id: Optional[int]) -> bool:
    """Whether the member counts as a moderator for automod purposes"""
    if member is None:
        return False

    if moderator_role_id and moderator_role_id in member.role_ids:
        return True

    guild = member.get_guild()
    if guild is not None and guild.owner_id == member.id:
        return True

    return bool(member_permissions(member) & MODERATOR_PERMISSIONS)


def require_moderator(ctx: arc.GatewayContext, config: BotConfig) -> None:
    """Raise unless the command was used by a moderator of the configured guild"""
    if ctx.guild_id != config.guild_id:
        raise CityWatchPermissionError("Automod is not configured for this server.")
    if not has_mod_permission(ctx.member, config.moderator_role_id):
        raise CityWatchPermissionError("Access denied (mods only).")
