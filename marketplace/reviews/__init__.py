"""Reviews and the rating aggregate derived from them."""

from marketplace.reviews.models import RatingSnapshot, Review, ReviewRole, validate_rating
from marketplace.reviews.ratings import RatingAggregator
from marketplace.reviews.service import ReviewGate

__all__ = [
    "Review",
    "ReviewRole",
    "RatingSnapshot",
    "validate_rating",
    "RatingAggregator",
    "ReviewGate",
]
