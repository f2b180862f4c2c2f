#!/usr/bin/env python3
"""
Script to inspect a user's matches, call threads and calls.
"""

import asyncio
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import settings
from services.container import build_repository
from services.repository import Repository


async def check_user_matches(repo: Repository, user_id: str) -> None:
    """Print matches and scheduling state for one user."""
    profile = await repo.get_profile(user_id)
    if not profile:
        print(f"❌ Profile '{user_id}' not found")
        return

    print(f"✅ {profile.name} (ID: {profile.id}, age {profile.age}, show me: {profile.show_me})")
    print(f"   Blocked (either way): {sorted(await repo.blocked_ids(user_id)) or 'none'}")
    print()

    matches = await repo.list_matches(user_id)
    if not matches:
        print("💔 No matches yet")
        return

    print(f"💞 Matches ({len(matches)}):")
    for match in matches:
        thread = await repo.get_thread_for_match(match.id)
        print(f"   • {match.other(user_id)} [{match.state}] match={match.id}")
        if thread is None:
            continue
        print(f"     thread={thread.id} scheduling={thread.scheduling_state}")
        proposal = await repo.get_latest_proposal(thread.id)
        if proposal:
            print(f"     latest proposal by {proposal.proposed_by}: {proposal.call_type} {', '.join(proposal.slots)}")
        upcoming = await repo.get_upcoming_call(thread.id)
        if upcoming:
            print(f"     📞 {upcoming.call_type} call {upcoming.state} at {upcoming.scheduled_start_iso}")


async def list_all_profiles(repo: Repository) -> None:
    profiles = await repo.list_profiles()
    if not profiles:
        print("👥 No profiles")
        return

    print(f"👥 All profiles ({len(profiles)}):")
    for profile in profiles:
        print(f"   • {profile.name} (ID: {profile.id}, age {profile.age})")


async def main() -> None:
    if len(sys.argv) < 2:
        print("Usage:")
        print(f"  {sys.argv[0]} <user_id>     - show a user's matches and calls")
        print(f"  {sys.argv[0]} --profiles    - list all profiles")
        return

    repo = build_repository(settings)
    command = sys.argv[1]

    if command == "--profiles":
        await list_all_profiles(repo)
    else:
        await check_user_matches(repo, command)


if __name__ == "__main__":
    # Load environment variables
    from dotenv import load_dotenv

    load_dotenv()

    asyncio.run(main())
