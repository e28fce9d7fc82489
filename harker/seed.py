"""
Initial data for a fresh database.

python -m harker.seed                    # sample live event and videos
python -m harker.seed promote <username> # grant admin to an existing account
"""
import argparse
import asyncio
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from harker import auth, config, crud
from harker.database import async_session, create_tables, engine
from harker.models import User, Video
from harker.schemas import LiveEventCreate, VideoCreate

logger = logging.getLogger(__name__)

SAMPLE_LIVE_EVENT = LiveEventCreate(
    title="Metropolitan Museum Virtual Tour: Renaissance Art",
    description=(
        "Join curator Dr. Eleanor Richards for a virtual tour of the Renaissance collection at the "
        "Metropolitan Museum of Art. Discover the stories behind masterpieces from Leonardo, Raphael, "
        "and Michelangelo."
    ),
    youtube_url="Z1XU5ZGqzeI",
    event_date=datetime(2023, 12, 31, 15, 0),
    discussion_guide=(
        "# Background\n"
        "The Renaissance was a period of European cultural, artistic, political, and scientific rebirth "
        "after the Middle Ages. Join Dr. Eleanor Richards as she explores the MET's collection.\n\n"
        "# Discussion Questions\n"
        "1. What artwork resonated with you the most and why?\n"
        "2. How do these Renaissance works reflect the cultural values of their time?\n"
        "3. Can you identify techniques that were revolutionary for this period?\n"
        "4. How do these works compare to modern art?"
    ),
)

SAMPLE_VIDEOS = [
    VideoCreate(
        title="British Museum Virtual Tour: Ancient Greece",
        description=(
            "Journey through the British Museum collection of Ancient Greek artifacts and sculptures "
            "with Dr. Marcus Anderson."
        ),
        youtube_url="s5lsyGF7Us0",
        duration=45,
        discussion_guide=(
            "# Background\n"
            "Ancient Greece laid the foundation for Western civilization, with numerous contributions to "
            "philosophy, literature, mathematics, science, and art.\n\n"
            "# Discussion Questions\n"
            "1. What surprised you the most about Ancient Greek artifacts?\n"
            "2. How do these artifacts reflect the values and beliefs of Ancient Greek society?\n"
            "3. What parallels can you draw between Ancient Greek society and our modern world?\n"
            "4. Which artifact or story did you find most compelling and why?"
        ),
    ),
    VideoCreate(
        title="National Gallery: Masterpieces of Impressionism",
        description=(
            "Explore the vibrant colors and revolutionary techniques of the Impressionist movement with "
            "curator Dr. Sarah Collins."
        ),
        youtube_url="jWE6cIqIbGU",
        duration=68,
        discussion_guide=(
            "# Background\n"
            "Impressionism began in the 1860s in Paris and represented a radical break from traditional "
            "European painting, characterized by visible brushstrokes, open composition, and emphasis on "
            "light.\n\n"
            "# Discussion Questions\n"
            "1. Which Impressionist painting stood out to you and why?\n"
            "2. How did Impressionism challenge conventional art at the time?\n"
            "3. What emotions do these paintings evoke?\n"
            "4. How has Impressionism influenced modern art and culture?\n"
            "5. If you could own one Impressionist painting, which would it be?"
        ),
    ),
    VideoCreate(
        title="The 1950s: A Decade That Defined America",
        description="Explore the cultural revolution, innovation, and everyday life in post-war America.",
        youtube_url="eDtM6OroGo4",
        duration=55,
        thumbnail_url="https://i.ytimg.com/vi/eDtM6OroGo4/maxresdefault.jpg",
        discussion_guide=(
            "# Background\n"
            "The 1950s saw America's transformation into a cultural and economic superpower following "
            "WWII. This documentary explores daily life, innovation, and cultural shifts.\n\n"
            "# Discussion Questions\n"
            "1. If you lived through the 1950s, how accurately does this documentary reflect your experiences?\n"
            "2. What aspects of 1950s America have been maintained in today's society?\n"
            "3. Which innovations from this decade had the biggest impact on American life?\n"
            "4. How did entertainment and media change during this period?\n"
            "5. What societal challenges were present but perhaps not highlighted in popular culture of the time?"
        ),
    ),
]


async def ensure_admin(db: AsyncSession, username: str, password: str) -> User:
    user = await crud.get_user_by_username(db, username)
    if user is None:
        logger.info(f"Creating admin account {username!r}")
        return await crud.create_user(db, username, await auth.hash_password(password), is_admin=True)
    if not user.is_admin:
        logger.info(f"Granting admin to existing account {username!r}")
        user = await crud.set_admin(db, user.id, True)
    return user


async def seed_sample_content(db: AsyncSession) -> bool:
    """Insert the sample live event and videos unless videos already exist."""
    result = await db.execute(select(Video.id).limit(1))
    if result.first() is not None:
        logger.info("Database already seeded, skipping")
        return False
    logger.info("Seeding database with sample content")
    await crud.create_live_event(db, SAMPLE_LIVE_EVENT)
    for video in SAMPLE_VIDEOS:
        await crud.create_video(db, video)
    return True


async def promote(db: AsyncSession, username: str) -> Optional[User]:
    user = await crud.get_user_by_username(db, username)
    if user is None:
        return None
    return await crud.set_admin(db, user.id, True)


async def run(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="python -m harker.seed")
    sub = parser.add_subparsers(dest="command")
    promote_cmd = sub.add_parser("promote", help="grant admin to an existing account")
    promote_cmd.add_argument("username")
    args = parser.parse_args(argv)

    await create_tables()
    try:
        async with async_session() as db:
            if args.command == "promote":
                if await promote(db, args.username) is None:
                    logger.error(f"No such user: {args.username}")
                    return 1
                logger.info(f"{args.username} is now an admin")
                return 0
            if config.ADMIN_USERNAME and config.ADMIN_PASSWORD:
                await ensure_admin(db, config.ADMIN_USERNAME, config.ADMIN_PASSWORD)
            await seed_sample_content(db)
            return 0
    finally:
        await engine.dispose()


if __name__ == "__main__":
    config.configure_logging()
    raise SystemExit(asyncio.run(run()))
