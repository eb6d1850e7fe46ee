"""Moves members out of the generic default role into the first rank.

Runs once per member on join and for everyone present at startup. Role
lookups go through the guild API, so work is queued to a background worker
instead of being awaited by the event handler.
"""

import asyncio
import logging
from typing import Any, Iterable, Optional

from .errors import ConfigurationInvalid, MembershipUnavailable
from .interfaces import GroupDirectory, RankSource

logger = logging.getLogger('ranks.migration')


class MigrationManager:
    """Queue-backed default-role migration."""

    def __init__(self, ranks: RankSource, directory: GroupDirectory):
        self.ranks = ranks
        self.directory = directory
        self.queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    async def migrate(self, member: Any) -> bool:
        """Swap the default role for the first rank's role.

        Returns:
            bool: True if the member was migrated, False if nothing changed.
        """
        try:
            first_rank = self.ranks.chain.first.name
        except ConfigurationInvalid:
            logger.warning("Could not determine first rank from config!")
            return False

        default_group = self.ranks.default_group
        membership = await self.directory.load_membership(member.id)
        if membership is None:
            error = MembershipUnavailable(member.id)
            logger.warning(f"Could not load user data for {member}: {error}")
            return False

        if default_group not in membership.tokens:
            return False

        logger.info(f"Member {member} is in '{default_group}' group. Changing to '{first_rank}'...")
        self.directory.remove_token(membership, default_group)
        self.directory.add_token(membership, first_rank)

        if not await self.directory.save(membership):
            logger.error(f"Failed to move {member} from '{default_group}' to '{first_rank}'")
            return False

        logger.info(f"Successfully changed {member} from '{default_group}' to '{first_rank}' group!")
        return True

    def schedule(self, member: Any):
        """Queue a member for migration without waiting."""
        self.queue.put_nowait(member)

    def sweep(self, members: Iterable[Any]) -> int:
        """Queue every non-bot member. Returns how many were queued."""
        count = 0
        for member in members:
            if getattr(member, 'bot', False):
                continue
            self.schedule(member)
            count += 1
        logger.info(f"Queued {count} members for default group migration")
        return count

    def start(self):
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())
            logger.info("Migration worker started")

    async def stop(self):
        if self._worker:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
            logger.info("Migration worker stopped")

    async def join(self):
        """Wait until every queued member has been processed."""
        await self.queue.join()

    async def _run(self):
        while True:
            member = await self.queue.get()
            try:
                await self.migrate(member)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error migrating {member}: {e}", exc_info=True)
            finally:
                self.queue.task_done()
