"""Video/audio room provider.

Real WebRTC integration is external; the mock hands out placeholder join URLs.
"""

from typing import Protocol


class CallProvider(Protocol):
    async def create_room(self, call_event_id: str) -> str:
        """Create a room for the call and return its join URL."""
        ...


class MockCallProvider:
    async def create_room(self, call_event_id: str) -> str:
        return f"mock://video-room/{call_event_id}"
