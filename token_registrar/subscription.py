import logging
from typing import Callable

from .firebase_client import FirebaseClient
from .schemas import SubscriptionResult, SubscriptionStatus, TokenRecord
from .token_store import TokenStore
from .token_utils import epoch_seconds, mask_token

logger = logging.getLogger(__name__)


class SubscriptionManager:
    """Subscribes newly registered tokens to their topic and records the outcome."""

    def __init__(self,
                 firebase_client: FirebaseClient,
                 token_store: TokenStore,
                 clock: Callable[[], int] = epoch_seconds):
        self.firebase = firebase_client
        self.store = token_store
        self.clock = clock

    def _attempt(self, token: str, topic: str) -> SubscriptionResult:
        try:
            response = self.firebase.subscribe_to_topic([token], topic)
        except Exception as e:
            return SubscriptionResult(SubscriptionStatus.FAILED, error=str(e))

        if response.failure_count > 0:
            reasons = [getattr(err, "reason", str(err)) for err in response.errors]
            return SubscriptionResult(SubscriptionStatus.FAILED, error=", ".join(reasons) or "unknown")
        return SubscriptionResult(SubscriptionStatus.SUBSCRIBED)

    def subscribe(self, record: TokenRecord, message_id: str = "-") -> SubscriptionResult:
        """
        Subscribe a token to the first topic of its record.

        The outcome is written back to the token store with exactly one
        update, whether the subscription succeeded or not. A failed write is
        logged and does not change the returned status.

        Args:
            record: Newly inserted token record
            message_id: SQS message ID used for log correlation

        Returns:
            SubscriptionResult
        """
        topic = record.topics[0]
        result = self._attempt(record.token, topic)

        if result.status == SubscriptionStatus.SUBSCRIBED:
            logger.info(
                f"[INFO] SQS Message ID: {message_id} - FCM topic subscription succeeded: "
                f"{mask_token(record.token)} - {topic}"
            )
        else:
            logger.error(
                f"[ERROR_FCM_SUBSCRIBE] SQS Message ID: {message_id} - FCM topic subscription failed: {result.error}",
                extra={"token": mask_token(record.token), "topic": topic}
            )

        updated = record.model_copy(update={
            "fcmSubStatus": result.status,
            "lastSubscriptionAttemptAt": self.clock(),
        })
        if not self.store.update(updated):
            logger.error(
                f"[ERROR_DB_UPDATE] SQS Message ID: {message_id} - Failed to persist subscription status "
                f"{result.status.value} for {mask_token(record.token)}"
            )
        return result
