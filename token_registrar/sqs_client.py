import logging
from typing import Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from tenacity import (before_sleep_log, retry, retry_if_exception_type, stop_after_attempt,
                      wait_exponential)

from .config import settings

logger = logging.getLogger(__name__)

# Retry policy for queue transport calls. Record-level retries are left to SQS redelivery.
transport_retry = retry(
    retry=retry_if_exception_type((ClientError, BotoCoreError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


class SQSClient:
    """SQS client for the token registration consumer."""

    def __init__(self, sqs=None):
        """
        Initialize the SQS client.

        Args:
            sqs: boto3 SQS client. Built from settings when omitted.
        """
        self.sqs = sqs or boto3.client(
            'sqs',
            region_name=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key
        )
        logger.info("SQS client initialized")

    @transport_retry
    def _receive(self, **params) -> Dict:
        return self.sqs.receive_message(**params)

    def receive_messages(self,
                         queue_url: str,
                         max_messages: Optional[int] = None,
                         wait_time: Optional[int] = None,
                         visibility_timeout: Optional[int] = None) -> List[Dict]:
        """
        Receive messages from an SQS queue.

        Args:
            queue_url: The SQS queue URL
            max_messages: Maximum number of messages to receive (1-10)
            wait_time: Long polling wait time in seconds (0-20)
            visibility_timeout: Visibility timeout in seconds

        Returns:
            List of message dictionaries, empty if the queue could not be read
        """
        max_messages = max_messages or settings.sqs_max_messages
        wait_time = wait_time if wait_time is not None else settings.sqs_wait_time
        visibility_timeout = visibility_timeout or settings.sqs_visibility_timeout

        try:
            logger.debug(f"Receiving messages from {queue_url}")
            response = self._receive(
                QueueUrl=queue_url,
                MaxNumberOfMessages=max_messages,
                WaitTimeSeconds=wait_time,
                VisibilityTimeout=visibility_timeout,
                AttributeNames=['All'],
                MessageAttributeNames=['All']
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error receiving messages from {queue_url}: {str(e)}")
            return []

        messages = response.get('Messages', [])
        logger.info(f"Received {len(messages)} messages from {queue_url}")
        return messages

    @transport_retry
    def _delete_batch(self, queue_url: str, entries: List[Dict]) -> Dict:
        return self.sqs.delete_message_batch(QueueUrl=queue_url, Entries=entries)

    def delete_messages(self, queue_url: str, messages: List[Dict]) -> List[str]:
        """
        Delete processed messages from an SQS queue.

        Args:
            queue_url: The SQS queue URL
            messages: Messages as returned by receive_messages

        Returns:
            IDs of messages that could not be deleted
        """
        not_deleted = []
        # DeleteMessageBatch accepts at most 10 entries
        for i in range(0, len(messages), 10):
            chunk = messages[i:i + 10]
            entries = [
                {'Id': str(idx), 'ReceiptHandle': message['ReceiptHandle']}
                for idx, message in enumerate(chunk)
            ]
            try:
                response = self._delete_batch(queue_url, entries)
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Error deleting messages from {queue_url}: {str(e)}")
                not_deleted.extend(message['MessageId'] for message in chunk)
                continue

            for failure in response.get('Failed', []):
                message = chunk[int(failure['Id'])]
                logger.error(f"Failed to delete message {message['MessageId']}: {failure.get('Message')}")
                not_deleted.append(message['MessageId'])

        return not_deleted
