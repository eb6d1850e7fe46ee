# cogs/managers/role_manager.py
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set
import discord
import logging

logger = logging.getLogger('role_manager')


@dataclass
class RoleMembership:
    """A member's rank roles plus the changes waiting to be saved."""
    member: discord.Member
    tokens: Set[str]
    to_add: List[str] = field(default_factory=list)
    to_remove: List[str] = field(default_factory=list)

    @property
    def member_id(self) -> int:
        return self.member.id

    @property
    def dirty(self) -> bool:
        return bool(self.to_add or self.to_remove)


class RoleDirectory:
    """Guild roles used as rank membership tokens (role name == token)."""

    def __init__(self, guild: discord.Guild):
        self.guild = guild
        self.role_cache: Dict[str, discord.Role] = {}

    def get_role(self, role_name: str) -> Optional[discord.Role]:
        """Get role with caching."""
        role = self.role_cache.get(role_name)
        if role is None:
            role = discord.utils.get(self.guild.roles, name=role_name)
            if role is not None:
                self.role_cache[role_name] = role
        return role

    def clear_cache(self):
        self.role_cache.clear()

    def tokens_for(self, member: discord.Member) -> Set[str]:
        return {role.name for role in member.roles}

    async def load_membership(self, member_id: int) -> Optional[RoleMembership]:
        """Load a member's current roles, fetching from the API if not cached."""
        member = self.guild.get_member(member_id)
        if member is None:
            try:
                member = await self.guild.fetch_member(member_id)
            except discord.NotFound:
                logger.warning(f"Member {member_id} not found in guild {self.guild.id}")
                return None
            except discord.HTTPException as e:
                logger.error(f"Error fetching member {member_id}: {e}")
                return None
        return RoleMembership(member=member, tokens=self.tokens_for(member))

    def remove_token(self, membership: RoleMembership, token: str) -> None:
        membership.tokens.discard(token)
        if token in membership.to_add:
            membership.to_add.remove(token)
        else:
            membership.to_remove.append(token)

    def add_token(self, membership: RoleMembership, token: str) -> None:
        membership.tokens.add(token)
        if token in membership.to_remove:
            membership.to_remove.remove(token)
        else:
            membership.to_add.append(token)

    def validate_role_hierarchy(self, roles: List[discord.Role]) -> bool:
        """Check the bot can manage every role in the list."""
        me = self.guild.me
        if not me.guild_permissions.manage_roles:
            return False
        top_bot_role = me.top_role
        return all(role < top_bot_role for role in roles)

    async def save(self, membership: RoleMembership, reason: str = "Rank update") -> bool:
        """Apply pending role removals, then additions."""
        if not membership.dirty:
            return True

        add_roles = [self.get_role(name) for name in membership.to_add]
        remove_roles = [self.get_role(name) for name in membership.to_remove]

        missing = [name for name, role in zip(membership.to_add, add_roles) if role is None]
        if missing:
            logger.error(f"Could not find role(s) {', '.join(missing)} in guild {self.guild.id}")
            return False
        remove_roles = [r for r in remove_roles if r is not None]

        if not self.validate_role_hierarchy(add_roles + remove_roles):
            logger.error(f"Bot cannot manage roles for {membership.member} (missing permission or hierarchy)")
            return False

        member = membership.member
        try:
            if remove_roles:
                await member.remove_roles(*remove_roles, reason=reason)
            if add_roles:
                await member.add_roles(*add_roles, reason=reason)
        except discord.Forbidden:
            logger.error(f"Missing permissions to update roles for {member}")
            return False
        except discord.HTTPException as e:
            logger.error(f"Error updating roles for {member}: {e}")
            return False

        membership.to_add.clear()
        membership.to_remove.clear()
        return True

    async def add_role(self, member: discord.Member, role_name: str, reason: str = "Rank update") -> bool:
        membership = RoleMembership(member=member, tokens=self.tokens_for(member))
        self.add_token(membership, role_name)
        return await self.save(membership, reason=reason)

    async def remove_role(self, member: discord.Member, role_name: str, reason: str = "Rank update") -> bool:
        membership = RoleMembership(member=member, tokens=self.tokens_for(member))
        self.remove_token(membership, role_name)
        return await self.save(membership, reason=reason)
