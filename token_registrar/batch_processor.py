import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from .schemas import (BatchResult, ErrorKind, InsertResult, RecordOutcome, RecordState,
                      RegistrationRequest, SubscriptionStatus, TokenRecord, ValidationOutcome)
from .subscription import SubscriptionManager
from .token_store import TokenStore
from .token_utils import epoch_seconds, mask_token
from .validator import TokenValidator

logger = logging.getLogger(__name__)


def record_message_id(record: Dict, index: Optional[int] = None) -> str:
    """Message ID of a Lambda event record or a ReceiveMessage message."""
    message_id = None
    if isinstance(record, dict):
        message_id = record.get("messageId") or record.get("MessageId")
    return message_id or f"record-{index}"


def record_body(record: Dict):
    if not isinstance(record, dict):
        return None
    return record.get("body", record.get("Body"))


def _failed(message_id: str, reached: RecordState, kind: ErrorKind, detail: Optional[str] = None) -> RecordOutcome:
    return RecordOutcome(message_id, RecordState.FAILED, kind, detail, failed_at=reached)


class BatchProcessor:
    """
    Drives each queue record through validation, storage and subscription.

    Every record ends in exactly one RecordOutcome. Records fail one at a
    time; the batch itself never raises.
    """

    def __init__(self,
                 validator: TokenValidator,
                 token_store: TokenStore,
                 subscription_manager: SubscriptionManager,
                 ttl_seconds: int,
                 max_workers: int = 1,
                 refresh_existing_tokens: bool = False,
                 clock: Callable[[], int] = epoch_seconds):
        self.validator = validator
        self.store = token_store
        self.subscriptions = subscription_manager
        self.ttl_seconds = ttl_seconds
        self.max_workers = max(1, max_workers)
        self.refresh_existing_tokens = refresh_existing_tokens
        self.clock = clock

    def process_batch(self, records: List[Dict]) -> BatchResult:
        """
        Process a batch of queue records.

        Args:
            records: Lambda SQS event records or ReceiveMessage messages

        Returns:
            BatchResult listing succeeded and failed message IDs in input order
        """
        if self.max_workers == 1 or len(records) <= 1:
            outcomes = [self.process_record(record, index) for index, record in enumerate(records)]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                outcomes = list(executor.map(self.process_record, records, range(len(records))))

        result = BatchResult(outcomes=outcomes)
        logger.info(
            f"Processed {len(records)} records, {len(result.succeeded)} succeeded, {len(result.failed)} failed"
        )
        return result

    def process_record(self, record: Dict, index: Optional[int] = None) -> RecordOutcome:
        message_id = record_message_id(record, index)
        if not isinstance(record, dict):
            logger.error(f"[ERROR_MISSING_PARAMS] SQS Message ID: {message_id} - record is not an object")
            return _failed(message_id, RecordState.RECEIVED, ErrorKind.MALFORMED_INPUT, "Record is not an object")
        try:
            return self._run(message_id, record)
        except Exception as e:
            logger.error(
                f"[CRITICAL_ERROR_RECORD] SQS Message ID: {message_id} - Unexpected error while processing record: {str(e)}",
                extra={"messageBody": record_body(record)},
                exc_info=True
            )
            return RecordOutcome(message_id, RecordState.FAILED, ErrorKind.UNEXPECTED_FAULT, str(e))

    def _run(self, message_id: str, record: Dict) -> RecordOutcome:
        state = RecordState.RECEIVED
        request, error = self._parse(record_body(record))
        if request is None:
            logger.error(
                f"[ERROR_MISSING_PARAMS] SQS Message ID: {message_id} - token or topic is missing or malformed: {error}"
            )
            return _failed(message_id, state, ErrorKind.MALFORMED_INPUT, error)
        state = RecordState.PARSED

        validation = self.validator.validate(request.token, message_id)
        if not validation.is_valid:
            kind = (ErrorKind.PROVIDER_VALIDATION_DEAD if validation.outcome == ValidationOutcome.DEAD
                    else ErrorKind.PROVIDER_VALIDATION_TRANSIENT)
            return _failed(message_id, state, kind, validation.error_code)
        state = RecordState.VALIDATED

        now = self.clock()
        token_record = TokenRecord.new(request.token, request.topic, now, self.ttl_seconds)
        inserted = self.store.insert_if_absent(token_record)

        if inserted == InsertResult.UNAVAILABLE:
            logger.error(f"[ERROR_DB_SAVE] SQS Message ID: {message_id} - Failed to save token to store",
                         extra={"token": mask_token(request.token), "topic": request.topic})
            return _failed(message_id, state, ErrorKind.STORE_UNAVAILABLE)

        if inserted == InsertResult.EXISTS:
            logger.info(
                f"[INFO] SQS Message ID: {message_id} - Token already stored (skipped): {mask_token(request.token)}"
            )
            if self.refresh_existing_tokens and not self.store.refresh_expiry(request.token, now):
                logger.warning(f"SQS Message ID: {message_id} - Could not refresh expiry for existing token")
            return RecordOutcome(message_id, RecordState.SKIPPED)

        logger.info(f"[INFO] SQS Message ID: {message_id} - New token saved: {mask_token(request.token)}")
        state = RecordState.STORED

        subscription = self.subscriptions.subscribe(token_record, message_id)
        if subscription.status == SubscriptionStatus.SUBSCRIBED:
            return RecordOutcome(message_id, RecordState.SUBSCRIBED)
        return RecordOutcome(message_id, RecordState.SUBSCRIPTION_FAILED,
                             ErrorKind.SUBSCRIPTION_FAILED, subscription.error, failed_at=state)

    @staticmethod
    def _parse(body) -> Tuple[Optional[RegistrationRequest], Optional[str]]:
        if isinstance(body, (str, bytes)):
            try:
                body = json.loads(body)
            except ValueError as e:
                return None, f"Invalid JSON in message body: {str(e)}"
        if not isinstance(body, dict):
            return None, "Message body is not an object"
        try:
            return RegistrationRequest.model_validate(body), None
        except ValidationError as e:
            return None, "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
