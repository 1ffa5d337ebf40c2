#!/usr/bin/env python3
"""
Populate the user store with random users and friendships.

Users are laid out on a jittered grid and linked through UserService, so
every friendship is written on both endpoints and cached reads are
invalidated exactly as for API calls.

Usage:
    # 200 users against a Qdrant server
    SOCIAL_GRAPH_STORAGE_URL=http://localhost:6333 python scripts/seed_data.py

    # Wipe existing users first, create 50, reproducible
    SOCIAL_GRAPH_STORAGE_URL=http://localhost:6333 python scripts/seed_data.py --clear --users 50 --seed 7

Note: with the default in-process store (":memory:") the data disappears
when the script exits.
"""

import argparse
import asyncio
import logging
import random
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from social_graph_service.config import Settings
from social_graph_service.context import AppContext
from social_graph_service.graph.positions import GridPositionProvider
from social_graph_service.services.user_service import UserService

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

FIRST_NAMES = [
    "Alice", "Bob", "Charlie", "David", "Emma", "Frank", "Grace", "Henry",
    "Iris", "Jack", "Kate", "Liam", "Mia", "Noah", "Olivia", "Peter",
    "Quinn", "Rachel", "Sam", "Tara", "Uma", "Victor", "Wendy", "Xavier",
    "Yara", "Zack", "Amy", "Ben", "Cara", "Dan", "Eva", "Felix",
]  # fmt: skip

LAST_NAMES = [
    "Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis",
    "Wilson", "Anderson", "Thomas", "Taylor", "Moore", "Martin", "Lee", "White",
]  # fmt: skip

HOBBIES = [
    "coding", "music", "reading", "gaming", "sports", "cooking", "art", "photography",
    "traveling", "dancing", "hiking", "yoga", "swimming", "cycling", "running", "writing",
    "gardening", "painting", "singing", "chess", "fishing", "camping", "skiing", "surfing",
    "meditation", "knitting", "pottery", "movies", "theater", "volunteering", "baking", "woodworking",
]  # fmt: skip

MIN_AGE, MAX_AGE = 18, 67
MIN_HOBBIES, MAX_HOBBIES = 2, 6
MIN_FRIENDS, MAX_FRIENDS = 2, 8


def generate_username(rng: random.Random) -> str:
    return f"{rng.choice(FIRST_NAMES)}{rng.choice(LAST_NAMES)}{rng.randrange(1000)}"


async def clear_users(service: UserService) -> int:
    """Unlink and delete every existing user. Returns the number deleted."""
    users = [user async for user in service.storage.iter_all()]
    logger.info(f"Clearing {len(users)} existing user(s)...")

    for user in users:
        for friend_id in list(user.friends):
            try:
                await service.unlink_users(user.id, friend_id)
            except Exception as e:
                # Dangling friend ids cannot be unlinked through the service
                logger.debug(f"Dropping friend reference {user.id} -> {friend_id}: {e}")
                await service.storage.update(user.id, {"friends": []})

    deleted = 0
    for user in users:
        await service.delete_user(user.id)
        deleted += 1
    return deleted


async def seed(service: UserService, num_users: int, rng: random.Random) -> dict:
    """
    Create ``num_users`` users and link each to a random set of others.

    Returns:
        Stats dict with user and link counts
    """
    stats = {"users": 0, "links": 0, "errors": 0}
    start = time.time()

    user_ids: list[str] = []
    for _ in range(num_users):
        user = await service.create_user(
            username=generate_username(rng),
            age=rng.randint(MIN_AGE, MAX_AGE),
            hobbies=rng.sample(HOBBIES, rng.randint(MIN_HOBBIES, MAX_HOBBIES)),
        )
        user_ids.append(user.id)
        stats["users"] += 1
    logger.info(f"Created {stats['users']} users")

    for user_id in user_ids:
        others = [uid for uid in user_ids if uid != user_id]
        count = min(len(others), rng.randint(MIN_FRIENDS, MAX_FRIENDS))
        for friend_id in rng.sample(others, count):
            try:
                await service.link_users(user_id, friend_id)
                stats["links"] += 1
            except Exception as e:
                stats["errors"] += 1
                logger.warning(f"Failed to link {user_id} -> {friend_id}: {e}")

    logger.info(f"Seeded {stats['users']} users and {stats['links']} links in {time.time() - start:.1f}s")
    return stats


async def main_async(args: argparse.Namespace) -> int:
    settings = Settings()
    context = await AppContext.open(settings)
    try:
        rng = random.Random(args.seed)
        context.position_provider = GridPositionProvider.for_total(
            args.users,
            spacing=settings.graph.grid_spacing,
            jitter=settings.graph.grid_jitter,
            rng=rng,
        )
        service = context.user_service()

        if args.clear:
            logger.info(f"Deleted {await clear_users(service)} user(s)")

        stats = await seed(service, args.users, rng)
        graph_stats = await service.get_user_stats()
        logger.info(
            f"Store now holds {graph_stats.total_users} users, {graph_stats.total_connections} connections, "
            f"{graph_stats.high_score_users} high-score"
        )
        return 0 if stats["errors"] == 0 else 1
    finally:
        await context.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the social graph with random users and friendships")
    parser.add_argument("--users", type=int, default=200, help="Number of users to create (default 200)")
    parser.add_argument("--clear", action="store_true", help="Delete all existing users first")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible data")
    args = parser.parse_args()

    if args.users < 1:
        parser.error("--users must be >= 1")

    sys.exit(asyncio.run(main_async(args)))


if __name__ == "__main__":
    main()
