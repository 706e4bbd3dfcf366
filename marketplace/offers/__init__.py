"""Provider offers on job requests."""

from marketplace.offers.models import VALID_OFFER_STATUS_VALUES, Offer, OfferStatus
from marketplace.offers.service import OfferLedger

__all__ = ["Offer", "OfferStatus", "VALID_OFFER_STATUS_VALUES", "OfferLedger"]
