"""Service layer components."""

from task_market_service.services.bid_engine import BidEngine
from task_market_service.services.entity_store import EntityStore
from task_market_service.services.escrow_engine import EscrowEngine
from task_market_service.services.fee_policy import FeePolicy
from task_market_service.services.notification_dispatcher import NotificationDispatcher
from task_market_service.services.rating_aggregator import RatingAggregator
from task_market_service.services.task_manager import TaskManager
from task_market_service.services.wallet_ledger import WalletLedger

__all__ = [
    "BidEngine",
    "EntityStore",
    "EscrowEngine",
    "FeePolicy",
    "NotificationDispatcher",
    "RatingAggregator",
    "TaskManager",
    "WalletLedger",
]
