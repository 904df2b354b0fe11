"""
Domain models for the Live Local sync layer.

Remote rows are validated into these models at the service boundary.
"""

from livelocal.models.domain.conversation_domain import Conversation, Message
from livelocal.models.domain.notification_domain import Notification
from livelocal.models.domain.rating_domain import RatingCacheEntry, RatingRow, RatingSummary
from livelocal.models.domain.review_domain import Booking, Review, ReviewDraft, ReviewStats
from livelocal.models.domain.saved_domain import SavedExperienceSummary, SavedItem
from livelocal.models.domain.session_domain import AuthUser, Notice

__all__ = [
    "AuthUser",
    "Booking",
    "Conversation",
    "Message",
    "Notice",
    "Notification",
    "RatingCacheEntry",
    "RatingRow",
    "RatingSummary",
    "Review",
    "ReviewDraft",
    "ReviewStats",
    "SavedExperienceSummary",
    "SavedItem",
]
