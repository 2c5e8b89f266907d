import logging
from typing import Any, Dict, Optional

from .batch_processor import BatchProcessor
from .logging_config import setup_logging
from .service import get_processor
from .sms_alerts import SmsAlertBroadcaster

setup_logging()
logger = logging.getLogger(__name__)


def handler(event: Dict[str, Any], context: Any = None,
            processor: Optional[BatchProcessor] = None) -> Dict[str, Any]:
    """
    SQS event source entry point for token registration.

    Failed records are returned in batchItemFailures so only they are
    redelivered; requires ReportBatchItemFailures on the event source mapping.
    """
    processor = processor or get_processor()
    records = event.get("Records") or []
    result = processor.process_batch(records)
    return result.to_lambda_response()


_broadcaster: Optional[SmsAlertBroadcaster] = None


def sms_handler(event: Dict[str, Any], context: Any = None,
                broadcaster: Optional[SmsAlertBroadcaster] = None) -> Dict[str, Any]:
    """Entry point for disaster SMS alerts."""
    global _broadcaster
    if broadcaster is None:
        if _broadcaster is None:
            _broadcaster = SmsAlertBroadcaster()
        broadcaster = _broadcaster
    return broadcaster.handle_event(event)
