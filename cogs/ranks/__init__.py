"""
Rank progression package.
Members buy their way up a configured chain of ranks with their bank balance.
"""

import logging

async def setup(bot):
    """Setup function called by discord.py when loading the cog."""
    from .cog import RanksCog

    logger = getattr(bot, 'logger', logging.getLogger('ranks'))

    try:
        await bot.add_cog(RanksCog(bot))
        logger.info("Successfully loaded RanksCog")
    except Exception as e:
        logger.error(f"Failed to load RanksCog: {e}")
        raise
