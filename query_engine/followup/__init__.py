"""Follow-up detection - decides which derived queries a response warrants."""

from .base import FollowUpDetector, NoFollowUpDetector
from .detector import HeuristicFollowUpDetector, generate_follow_up_query, should_follow_up

__all__ = [
    "FollowUpDetector",
    "NoFollowUpDetector",
    "HeuristicFollowUpDetector",
    "generate_follow_up_query",
    "should_follow_up",
]
