import logging
import signal
import sys
import time
from typing import Optional

from .batch_processor import BatchProcessor
from .config import settings
from .logging_config import setup_logging
from .service import build_processor
from .sqs_client import SQSClient

# Create logger
logger = logging.getLogger(__name__)

# Handle graceful shutdown
running = True


def signal_handler(sig, frame):
    """Handle termination signals for graceful shutdown."""
    global running
    logger.info("Shutdown signal received, finishing current batch...")
    running = False


class TokenRegistrationConsumer:
    """Long-polling consumer for token registration messages."""

    def __init__(self,
                 sqs_client: Optional[SQSClient] = None,
                 processor: Optional[BatchProcessor] = None,
                 queue_url: Optional[str] = None):
        self.sqs_client = sqs_client or SQSClient()
        self.processor = processor or build_processor()
        self.queue_url = queue_url or settings.queue_url
        logger.info("Token Registration Consumer initialized")

    def process_messages(self, max_messages: Optional[int] = None) -> int:
        """
        Process a batch of messages from the queue.

        Succeeded messages are deleted; failed ones stay on the queue and are
        redelivered once their visibility timeout expires.

        Args:
            max_messages: Maximum number of messages to process (1-10)

        Returns:
            Number of messages received
        """
        messages = self.sqs_client.receive_messages(
            queue_url=self.queue_url,
            max_messages=max_messages or settings.sqs_max_messages
        )

        if not messages:
            return 0

        result = self.processor.process_batch(messages)
        to_delete = [m for m, outcome in zip(messages, result.outcomes) if outcome.succeeded]
        if to_delete:
            self.sqs_client.delete_messages(self.queue_url, to_delete)

        if result.failed:
            logger.warning(f"{len(result.failed)} messages left for redelivery: {result.failed}")
        return len(messages)

    def run(self) -> int:
        """Run the consumer until a shutdown signal is received."""
        logger.info("Starting Token Registration Consumer")

        try:
            while running:
                try:
                    if self.process_messages() == 0:
                        # Avoid hammering SQS when long polling returns early
                        time.sleep(1)
                except Exception as e:
                    logger.error(f"Error in message processing loop: {str(e)}")
                    time.sleep(5)

            logger.info("Token Registration Consumer shutdown gracefully")

        except Exception as e:
            logger.critical(f"Fatal error in Token Registration Consumer: {str(e)}")
            return 1

        return 0


def main():
    """Main entry point for the polling consumer."""
    setup_logging()
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info(f"Starting Token Registration Consumer in {settings.environment} environment")

    consumer = TokenRegistrationConsumer()
    return consumer.run()


if __name__ == "__main__":
    sys.exit(main())
