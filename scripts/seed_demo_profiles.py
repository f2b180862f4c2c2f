#!/usr/bin/env python3
"""
Insert the twelve demo profiles into the configured storage backend.
"""

import asyncio
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import settings
from services.container import build_repository
from services.seed import seed_demo_profiles


async def main() -> None:
    if settings.is_production:
        print("❌ Refusing to seed demo profiles in production")
        return

    repo = build_repository(settings)
    added = await seed_demo_profiles(repo)
    print(f"✅ Added {added} demo profile(s) to the {settings.storage_backend} backend")


if __name__ == "__main__":
    # Load environment variables
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    asyncio.run(main())
