"""Application lifecycle management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from task_market_service.clients.identity_client import IdentityClient
from task_market_service.config import get_settings
from task_market_service.core.state import init_app_state
from task_market_service.logging import get_logger, setup_logging
from task_market_service.services.bid_engine import BidEngine
from task_market_service.services.entity_store import EntityStore
from task_market_service.services.escrow_engine import EscrowEngine
from task_market_service.services.fee_policy import FeePolicy
from task_market_service.services.notification_dispatcher import NotificationDispatcher
from task_market_service.services.rating_aggregator import RatingAggregator
from task_market_service.services.task_manager import TaskManager
from task_market_service.services.wallet_ledger import WalletLedger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    # === STARTUP ===
    settings = get_settings()

    setup_logging(settings.logging.level, settings.service.name, settings.logging.directory)
    logger = get_logger(__name__)

    state = init_app_state()

    identity_client = IdentityClient(
        base_url=settings.identity.base_url,
        verify_jws_path=settings.identity.verify_jws_path,
        timeout_seconds=settings.identity.timeout_seconds,
    )
    state.identity_client = identity_client

    store = EntityStore(db_path=settings.database.path)
    state.store = store

    notifier = NotificationDispatcher(store)
    ledger = WalletLedger(store)
    escrow_engine = EscrowEngine(
        store=store,
        ledger=ledger,
        fee_policy=FeePolicy(
            flat_fee=settings.escrow.flat_fee,
            fee_basis_points=settings.escrow.fee_basis_points,
        ),
        funding_model=settings.escrow.funding_model,
        fee_account_id=settings.platform.fee_account_id,
    )
    block_cancel = settings.lifecycle.block_cancel_during_handoff

    state.notification_dispatcher = notifier
    state.wallet_ledger = ledger
    state.escrow_engine = escrow_engine
    state.bid_engine = BidEngine(
        store,
        escrow_engine,
        notifier,
        block_cancel_during_handoff=block_cancel,
    )
    state.task_manager = TaskManager(
        store,
        escrow_engine,
        notifier,
        platform_agent_id=settings.platform.agent_id,
        block_cancel_during_handoff=block_cancel,
    )
    state.rating_aggregator = RatingAggregator(store, notifier)

    logger.info(
        "Service starting",
        extra={
            "service": settings.service.name,
            "version": settings.service.version,
            "port": settings.server.port,
            "db_path": settings.database.path,
            "identity_base_url": settings.identity.base_url,
            "funding_model": settings.escrow.funding_model,
            "platform_agent_id": settings.platform.agent_id,
        },
    )

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Service shutting down", extra={"uptime_seconds": state.uptime_seconds})

    store.close()
    await identity_client.close()
