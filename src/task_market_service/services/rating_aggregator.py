"""Reviews and the rolling worker ratings derived from them."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any, cast

from task_market_service.core.exceptions import ServiceError
from task_market_service.logging import get_logger
from task_market_service.services.entity_store import DuplicateReviewError
from task_market_service.services.lifecycle import TaskState
from task_market_service.services.notification_dispatcher import NotificationType
from task_market_service.services.task_records import load_task, now_iso

if TYPE_CHECKING:
    from task_market_service.services.entity_store import EntityStore
    from task_market_service.services.notification_dispatcher import NotificationDispatcher

MIN_RATING = 1
MAX_RATING = 5
RECENT_REVIEWS_LIMIT = 10


def _is_valid_rating(value: object) -> bool:
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and MIN_RATING <= value <= MAX_RATING
    )


def incremental_mean(old_mean: float, old_count: int, new_value: int) -> float:
    """Fold one more sample into a running mean."""
    return (old_mean * old_count + new_value) / (old_count + 1)


class RatingAggregator:
    """
    Appends reviews and keeps each worker's overall and per-category
    ratings up to date.

    Ratings are maintained incrementally rather than recomputed from the
    review history, so the review insert and both rating updates are
    written in one transaction.
    """

    def __init__(self, store: EntityStore, notifier: NotificationDispatcher) -> None:
        self._store = store
        self._notifier = notifier
        self._logger = get_logger(__name__)

    def submit_review(
        self,
        task_id: str,
        poster_id: str,
        worker_id: str,
        star_rating: object,
        per_category_ratings: object = None,
        text: object = None,
    ) -> dict[str, Any]:
        """
        Review the worker of a completed task.

        The category rating for the task's category is folded with the
        matching entry of ``per_category_ratings`` when one is given, and
        with ``star_rating`` otherwise.

        Error precedence:
        1. INVALID_RATING: a rating is not an integer in [1, 5]
        2. INVALID_PAYLOAD: malformed per-category map or text
        3. NOT_FOUND: task does not exist
        4. UNAUTHORIZED: caller is not the task's poster
        5. INVALID_STATE: task is not completed, or worker was not assigned to it
        6. DUPLICATE_REVIEW: this task and worker were already reviewed
        """
        if not _is_valid_rating(star_rating):
            raise ServiceError(
                "INVALID_RATING",
                f"Star rating must be an integer between {MIN_RATING} and {MAX_RATING}",
                400,
                {},
            )

        ratings: dict[str, int] = {}
        if per_category_ratings is not None:
            if not isinstance(per_category_ratings, dict):
                raise ServiceError(
                    "INVALID_PAYLOAD", "per_category_ratings must be an object", 400, {}
                )
            for key, value in per_category_ratings.items():
                if not _is_valid_rating(value):
                    raise ServiceError(
                        "INVALID_RATING",
                        f"Rating for '{key}' must be an integer between "
                        f"{MIN_RATING} and {MAX_RATING}",
                        400,
                        {"category": key},
                    )
                ratings[str(key)] = int(value)

        if text is not None and not isinstance(text, str):
            raise ServiceError("INVALID_PAYLOAD", "Review text must be a string", 400, {})

        task = load_task(self._store, task_id)
        if poster_id != task["poster_id"]:
            raise ServiceError("UNAUTHORIZED", "Only the poster can review this task", 403, {})
        if task["state"] != TaskState.COMPLETED.value:
            raise ServiceError(
                "INVALID_STATE",
                f"Cannot review task in '{task['state']}' state, must be 'completed'",
                409,
                {},
            )
        if worker_id != task["assigned_worker_id"]:
            raise ServiceError(
                "INVALID_STATE",
                "Worker was not assigned to this task",
                409,
                {},
            )

        stars = cast("int", star_rating)
        category = str(task["category"])
        created_at = now_iso()
        review = {
            "review_id": f"rev-{uuid.uuid4()}",
            "task_id": task_id,
            "worker_id": worker_id,
            "poster_id": poster_id,
            "star_rating": stars,
            "per_category_ratings": ratings,
            "text": "" if text is None else text,
            "created_at": created_at,
        }

        with self._store.transaction():
            try:
                self._store.insert_review(review)
            except DuplicateReviewError as exc:
                raise ServiceError(
                    "DUPLICATE_REVIEW",
                    "This worker was already reviewed for this task",
                    409,
                    {},
                ) from exc

            profile = self._store.get_worker_profile(worker_id)
            old_overall = 0.0 if profile is None else float(profile["overall_rating"])
            old_total = 0 if profile is None else int(profile["total_reviews"])
            overall = incremental_mean(old_overall, old_total, stars)
            self._store.upsert_worker_profile(worker_id, overall, old_total + 1, created_at)

            current = self._store.get_category_ratings(worker_id).get(category)
            old_rating = 0.0 if current is None else float(current["rating"])
            old_count = 0 if current is None else int(current["review_count"])
            self._store.upsert_category_rating(
                worker_id,
                category,
                incremental_mean(old_rating, old_count, ratings.get(category, stars)),
                old_count + 1,
            )

            self._notifier.emit(NotificationType.REVIEW_RECEIVED, worker_id, task_id)

        self._logger.info(
            "Review submitted",
            extra={
                "task_id": task_id,
                "worker_id": worker_id,
                "star_rating": stars,
                "overall_rating": overall,
                "total_reviews": old_total + 1,
            },
        )
        return review

    def get_worker_rating(self, worker_id: str) -> dict[str, Any]:
        """Overall and per-category ratings plus the most recent reviews."""
        profile = self._store.get_worker_profile(worker_id)
        categories = self._store.get_category_ratings(worker_id)
        return {
            "worker_id": worker_id,
            "overall_rating": 0.0 if profile is None else profile["overall_rating"],
            "total_reviews": 0 if profile is None else profile["total_reviews"],
            "category_ratings": {
                category: entry["rating"] for category, entry in categories.items()
            },
            "recent_reviews": self._store.get_reviews_for_worker(worker_id, RECENT_REVIEWS_LIMIT),
        }

    def list_worker_reviews(self, worker_id: str) -> list[dict[str, Any]]:
        """All reviews of a worker, newest first."""
        return self._store.get_reviews_for_worker(worker_id, None)
