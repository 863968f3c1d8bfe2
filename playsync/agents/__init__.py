"""Leader and follower agents."""

from .follower import FollowerAgent
from .leader import LeaderAgent

__all__ = ["FollowerAgent", "LeaderAgent"]
