import logging
import os
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import settings
from .schemas import InsertResult, TokenRecord
from .token_utils import mask_token

logger = logging.getLogger(__name__)


def create_table_resource(table_name: str):
    """Build a boto3 Table for the configured region and endpoint."""
    aws_kw = {}
    endpoint_url = settings.dynamodb_endpoint_url
    if endpoint_url and ("localhost" in endpoint_url or "127.0.0.1" in endpoint_url):
        # DynamoDB Local still requires some credentials
        if not os.getenv("AWS_ACCESS_KEY_ID") and not settings.aws_access_key_id:
            aws_kw["aws_access_key_id"] = "test"
            aws_kw["aws_secret_access_key"] = "test"
    if settings.aws_access_key_id and settings.aws_secret_access_key:
        aws_kw["aws_access_key_id"] = settings.aws_access_key_id
        aws_kw["aws_secret_access_key"] = settings.aws_secret_access_key

    resource = boto3.resource(
        "dynamodb",
        region_name=settings.aws_region,
        endpoint_url=endpoint_url,
        **aws_kw
    )
    return resource.Table(table_name)


class TokenStore:
    """DynamoDB table of registered tokens, keyed by token."""

    def __init__(self, table=None, ttl_seconds: Optional[int] = None):
        """
        Initialize the token store.

        Args:
            table: boto3 DynamoDB Table. Built from settings when omitted.
            ttl_seconds: Lifetime used for expireAt refreshes
        """
        self.table = table if table is not None else create_table_resource(settings.token_table_name)
        self.table_name = self.table.name
        # Resource objects are not thread-safe; calls go through the resource's
        # low-level client, which keeps the DynamoDB type conversion
        self.client = self.table.meta.client
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.token_ttl_seconds
        logger.info(f"Token store initialized with table: {self.table_name}")

    def insert_if_absent(self, record: TokenRecord) -> InsertResult:
        """
        Write a record only when no record exists for its token.

        Returns:
            INSERTED on success, EXISTS when the token is already stored,
            UNAVAILABLE on any other failure
        """
        try:
            self.client.put_item(
                TableName=self.table_name,
                Item=record.to_item(),
                ConditionExpression="attribute_not_exists(#tokenAlias)",
                ExpressionAttributeNames={"#tokenAlias": "token"},
            )
            return InsertResult.INSERTED
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                return InsertResult.EXISTS
            logger.error(f"Error inserting token {mask_token(record.token)}: {str(e)}")
            return InsertResult.UNAVAILABLE
        except BotoCoreError as e:
            logger.error(f"Error inserting token {mask_token(record.token)}: {str(e)}")
            return InsertResult.UNAVAILABLE

    def update(self, record: TokenRecord) -> bool:
        """
        Overwrite the stored record.

        Returns:
            True if successful, False otherwise
        """
        try:
            self.client.put_item(TableName=self.table_name, Item=record.to_item())
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error updating token {mask_token(record.token)}: {str(e)}")
            return False

    def delete(self, token: str) -> bool:
        """
        Remove a token. Deleting a missing token succeeds.

        Returns:
            True if successful, False otherwise
        """
        try:
            self.client.delete_item(TableName=self.table_name, Key={"token": token})
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error deleting token {mask_token(token)}: {str(e)}")
            return False

    def refresh_expiry(self, token: str, now: int) -> bool:
        """
        Move expireAt of an existing token to now + TTL.

        Returns:
            True if the record was updated, False otherwise
        """
        try:
            self.client.update_item(
                TableName=self.table_name,
                Key={"token": token},
                UpdateExpression="SET #expireAt = :expireAt",
                ConditionExpression="attribute_exists(#tokenAlias)",
                ExpressionAttributeNames={"#expireAt": "expireAt", "#tokenAlias": "token"},
                ExpressionAttributeValues={":expireAt": now + self.ttl_seconds},
            )
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error refreshing expiry for token {mask_token(token)}: {str(e)}")
            return False

    def get(self, token: str) -> Optional[TokenRecord]:
        """Fetch a stored record, or None if absent. Used for inspection and repair."""
        response = self.client.get_item(TableName=self.table_name, Key={"token": token})
        item = response.get("Item")
        if not item:
            return None
        return TokenRecord.from_item(item)
