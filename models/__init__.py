"""Database models."""

from models.account import Account
from models.call import CallEvent, CallProposal, CallThread, Feedback
from models.match import Match, Swipe
from models.profile import Profile
from models.safety import Block, Report

__all__ = [
    "Account",
    "Profile",
    "Swipe",
    "Match",
    "CallThread",
    "CallProposal",
    "CallEvent",
    "Feedback",
    "Block",
    "Report",
]
