"""API routers."""

from task_market_service.routers import bids, health, notifications, reviews, tasks, wallets

__all__ = ["bids", "health", "notifications", "reviews", "tasks", "wallets"]
