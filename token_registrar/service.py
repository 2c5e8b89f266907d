import logging
from typing import Optional

from .batch_processor import BatchProcessor
from .config import settings
from .firebase_client import FirebaseClient
from .subscription import SubscriptionManager
from .token_store import TokenStore
from .validator import TokenValidator

logger = logging.getLogger(__name__)


def build_processor(firebase_client: Optional[FirebaseClient] = None,
                    token_store: Optional[TokenStore] = None) -> BatchProcessor:
    """
    Wire the registration pipeline from settings.

    Args:
        firebase_client: FCM client, created from configured credentials when omitted
        token_store: Token table, created from settings when omitted

    Returns:
        Ready to use BatchProcessor
    """
    firebase_client = firebase_client or FirebaseClient()
    token_store = token_store or TokenStore()

    validator = TokenValidator(
        firebase_client=firebase_client,
        token_store=token_store,
        dead_token_codes=settings.dead_token_codes,
        dry_run=settings.probe_dry_run,
    )
    subscription_manager = SubscriptionManager(firebase_client, token_store)
    processor = BatchProcessor(
        validator=validator,
        token_store=token_store,
        subscription_manager=subscription_manager,
        ttl_seconds=settings.token_ttl_seconds,
        max_workers=settings.record_concurrency,
        refresh_existing_tokens=settings.refresh_existing_tokens,
    )
    logger.info("Token registration pipeline initialized")
    return processor


_processor: Optional[BatchProcessor] = None


def get_processor() -> BatchProcessor:
    """Process-wide BatchProcessor, built on first use."""
    global _processor
    if _processor is None:
        _processor = build_processor()
    return _processor
