"""Pydantic response models for the API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    """Response model for GET /health."""

    model_config = ConfigDict(extra="forbid")
    status: Literal["ok"]
    uptime_seconds: float
    started_at: str
    total_tasks: int
    tasks_by_state: dict[str, int]


class ErrorResponse(BaseModel):
    """Standard error response model."""

    model_config = ConfigDict(extra="forbid")
    error: str
    message: str
    details: dict[str, object]


class LocationResponse(BaseModel):
    """Where a task takes place."""

    model_config = ConfigDict(extra="forbid")
    latitude: float
    longitude: float
    city: str
    address: str | None


class TaskResponse(BaseModel):
    """Full task detail response model."""

    model_config = ConfigDict(extra="forbid")
    task_id: str
    poster_id: str
    title: str
    description: str
    category: str
    budget: int
    location: LocationResponse | None
    scheduled_date: str | None
    scheduled_time: str | None
    is_instant_job: bool
    accepted_bid_amount: int | None
    state: Literal["open", "in_progress", "completed", "cancelled"]
    assigned_worker_id: str | None
    worker_arrived: bool
    completion_requested: bool
    completion_photo_url: str | None
    version: int
    created_at: str
    updated_at: str
    accepted_at: str | None
    completed_at: str | None
    cancelled_at: str | None


class TaskListResponse(BaseModel):
    """Response model for GET /tasks."""

    model_config = ConfigDict(extra="forbid")
    tasks: list[TaskResponse]


class BidResponse(BaseModel):
    """Response model for a single bid."""

    model_config = ConfigDict(extra="forbid")
    bid_id: str
    task_id: str
    worker_id: str
    amount: int
    message: str
    status: Literal["pending", "accepted", "rejected"]
    created_at: str
    updated_at: str


class BidListResponse(BaseModel):
    """Response model for bid listings."""

    model_config = ConfigDict(extra="forbid")
    bids: list[BidResponse]


class EscrowResponse(BaseModel):
    """Response model for GET /tasks/{task_id}/escrow."""

    model_config = ConfigDict(extra="forbid")
    task_id: str
    amount: int
    platform_fee: int
    total: int
    status: Literal["locked", "released", "refunded"]
    funding_model: Literal["trust", "prepaid"]
    created_at: str
    resolved_at: str | None


class TransactionResponse(BaseModel):
    """One wallet transaction."""

    model_config = ConfigDict(extra="forbid")
    tx_id: str
    user_id: str
    type: Literal["credit", "debit"]
    amount: int
    balance_after: int
    description: str
    task_id: str | None
    created_at: str


class WalletResponse(BaseModel):
    """Response model for GET /wallets/me."""

    model_config = ConfigDict(extra="forbid")
    user_id: str
    balance: int
    transactions: list[TransactionResponse]


class ReviewResponse(BaseModel):
    """Response model for a single review."""

    model_config = ConfigDict(extra="forbid")
    review_id: str
    task_id: str
    worker_id: str
    poster_id: str
    star_rating: int
    per_category_ratings: dict[str, int]
    text: str
    created_at: str


class ReviewListResponse(BaseModel):
    """Response model for GET /workers/{worker_id}/reviews."""

    model_config = ConfigDict(extra="forbid")
    worker_id: str
    reviews: list[ReviewResponse]


class WorkerRatingResponse(BaseModel):
    """Response model for GET /workers/{worker_id}/rating."""

    model_config = ConfigDict(extra="forbid")
    worker_id: str
    overall_rating: float
    total_reviews: int
    category_ratings: dict[str, float]
    recent_reviews: list[ReviewResponse]


class NotificationResponse(BaseModel):
    """Response model for a single notification."""

    model_config = ConfigDict(extra="forbid")
    notification_id: str
    recipient_id: str
    type: str
    related_entity_id: str
    is_read: bool
    created_at: str


class NotificationListResponse(BaseModel):
    """Response model for GET /notifications."""

    model_config = ConfigDict(extra="forbid")
    notifications: list[NotificationResponse]


class UnreadCountResponse(BaseModel):
    """Response model for GET /notifications/unread-count."""

    model_config = ConfigDict(extra="forbid")
    unread_count: int
