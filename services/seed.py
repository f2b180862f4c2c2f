"""Demo profiles for local runs and the developer endpoints."""

import logging
from datetime import date, datetime, timezone

from services.entities import UserProfile, utcnow
from services.repository import Repository

logger = logging.getLogger(__name__)


def birthday_for_age(age: int, today: date | None = None) -> date:
    today = today or utcnow().date()
    try:
        return today.replace(year=today.year - age)
    except ValueError:
        # Feb 29 on a non-leap target year
        return today.replace(year=today.year - age, day=28)


def _photos(seed: str, count: int) -> list[str]:
    return [f"https://picsum.photos/seed/{seed}{n}/400/600" for n in range(1, count + 1)]


# (slug, name, age, gender, sexuality, show_me, photo count, prompts, bio)
DEMO_PROFILES = [
    (
        "alex", "Alex", 28, "man", "straight", "women", 2,
        [
            "I'm happiest when I'm hiking with my dog",
            "My ideal first date: coffee and a walk in the park",
            "Looking for someone who loves adventure",
        ],
        "Software engineer by day, amateur chef by night. Let's skip the small talk!",
    ),
    (
        "jordan", "Jordan", 26, "woman", "bisexual", "everyone", 3,
        [
            "Coffee snob, but in a friendly way",
            "I'll always share my fries with you",
            "Let's explore new restaurants together",
        ],
        "Foodie | Travel enthusiast | Looking for my adventure partner",
    ),
    (
        "taylor", "Taylor", 31, "woman", "straight", "men", 2,
        [
            "Weekend plans: farmers market then brunch",
            "I'm the friend who always has snacks",
            "Tell me about your favorite book",
        ],
        "Bookworm with a love for good conversation",
    ),
    (
        "morgan", "Morgan", 29, "man", "gay", "men", 2,
        [
            "Music is my love language",
            "Always planning my next concert",
            "I make a mean playlist for road trips",
        ],
        "Vinyl collector, concert goer, and aspiring guitarist",
    ),
    (
        "casey", "Casey", 27, "woman", "lesbian", "women", 1,
        [
            "Yoga in the morning, wine in the evening",
            "I believe in work-life balance",
            "Looking for genuine connection",
        ],
        "Wellness coach helping people find their zen",
    ),
    (
        "riley", "Riley", 30, "man", "straight", "women", 3,
        [
            "Dog parent to a golden retriever",
            "Best conversation starter: pet pictures",
            "Outdoor enthusiast rain or shine",
        ],
        "Veterinarian who never gets tired of animal facts",
    ),
    (
        "quinn", "Quinn", 25, "non_binary", "pansexual", "everyone", 2,
        [
            "Artist seeking another creative soul",
            "Museums are my happy place",
            "I see beauty in everything",
        ],
        "Painter and photographer capturing life one frame at a time",
    ),
    (
        "avery", "Avery", 33, "woman", "straight", "men", 2,
        [
            "Traveler with 30+ countries visited",
            "Always planning the next adventure",
            "Fluent in sarcasm and dad jokes",
        ],
        "Digital nomad working remotely from paradise",
    ),
    (
        "sam", "Sam", 28, "man", "bisexual", "everyone", 1,
        [
            "Startup founder, eternal optimist",
            "I run on coffee and big ideas",
            "Looking for my co-pilot in life",
        ],
        "Tech entrepreneur building the future, one line of code at a time",
    ),
    (
        "jamie", "Jamie", 32, "woman", "straight", "men", 2,
        [
            "Chef by profession, foodie by choice",
            "I'll cook you dinner on our first date",
            "The way to my heart is through tacos",
        ],
        "Culinary school grad who believes food brings people together",
    ),
    (
        "drew", "Drew", 29, "man", "straight", "women", 3,
        [
            "Fitness enthusiast, not a gym bro",
            "I run marathons for fun (yes, really)",
            "Balance is key - pizza after the gym",
        ],
        "Personal trainer who loves outdoor adventures",
    ),
    (
        "blake", "Blake", 27, "man", "queer", "everyone", 2,
        [
            "Film buff with strong opinions",
            "Always down for movie nights",
            "I quote movies in daily conversation",
        ],
        "Film critic and screenwriter in the making",
    ),
]


def demo_profiles(today: date | None = None) -> list[UserProfile]:
    profiles = []
    for day, (slug, name, age, gender, sexuality, show_me, photo_count, prompts, bio) in enumerate(
        DEMO_PROFILES, start=1
    ):
        created_at = datetime(2024, 1, day, tzinfo=timezone.utc)
        profiles.append(
            UserProfile(
                id=f"demo-{slug}",
                name=name,
                birthday=birthday_for_age(age, today),
                gender=gender,
                sexuality=sexuality,
                show_me=show_me,
                prompts=prompts,
                photos=_photos(slug, photo_count),
                bio=bio,
                created_at=created_at,
                updated_at=created_at,
            )
        )
    return profiles


async def seed_demo_profiles(repo: Repository) -> int:
    """Insert the demo profiles that are not present yet. Returns how many were added."""
    added = 0
    for profile in demo_profiles():
        if await repo.get_profile(profile.id):
            continue
        await repo.create_profile(profile)
        added += 1
    logger.info(f"Seeded {added} demo profiles")
    return added
