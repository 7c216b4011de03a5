from spaceshare.models.user import User
from spaceshare.models.listing import Listing
from spaceshare.models.coin_transaction import CoinTransaction
from spaceshare.models.coin_pricing import CoinExchangeConfig, CoinTopupTier
from spaceshare.models.topup_order import TopupOrder
from spaceshare.models.listing_unlock import ListingUnlock
from spaceshare.models.webhook_event import WebhookEvent

__all__ = [
    "User",
    "Listing",
    "CoinTransaction",
    "CoinExchangeConfig",
    "CoinTopupTier",
    "TopupOrder",
    "ListingUnlock",
    "WebhookEvent",
]
