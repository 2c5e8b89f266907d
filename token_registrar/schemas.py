import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class SubscriptionStatus(str, Enum):
    SUBSCRIBED = "SUBSCRIBED"
    FAILED = "FAILED"


class ValidationOutcome(str, Enum):
    VALID = "VALID"
    DEAD = "DEAD"
    TRANSIENT = "TRANSIENT"


class InsertResult(str, Enum):
    INSERTED = "INSERTED"
    EXISTS = "EXISTS"
    UNAVAILABLE = "UNAVAILABLE"


class RecordState(str, Enum):
    RECEIVED = "RECEIVED"
    PARSED = "PARSED"
    VALIDATED = "VALIDATED"
    STORED = "STORED"
    SUBSCRIBED = "SUBSCRIBED"
    SUBSCRIPTION_FAILED = "SUBSCRIPTION_FAILED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class ErrorKind(str, Enum):
    MALFORMED_INPUT = "MALFORMED_INPUT"
    PROVIDER_VALIDATION_DEAD = "PROVIDER_VALIDATION_DEAD"
    PROVIDER_VALIDATION_TRANSIENT = "PROVIDER_VALIDATION_TRANSIENT"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    SUBSCRIPTION_FAILED = "SUBSCRIPTION_FAILED"
    UNEXPECTED_FAULT = "UNEXPECTED_FAULT"


# Terminal states that are reported to the queue as processed
SUCCESS_STATES = {
    RecordState.SUBSCRIBED,
    RecordState.SUBSCRIPTION_FAILED,
    RecordState.SKIPPED,
}


class RegistrationRequest(BaseModel):
    """Body of a token registration message"""
    model_config = ConfigDict(extra="ignore")

    token: StrictStr = Field(min_length=1)
    topic: StrictStr = Field(min_length=1)


class TokenRecord(BaseModel):
    """Registered device token as persisted in the token table"""
    token: str
    createdAt: int
    expireAt: int
    topics: List[str]
    fcmSubStatus: Optional[SubscriptionStatus] = None
    lastSubscriptionAttemptAt: Optional[int] = None

    @classmethod
    def new(cls, token: str, topic: str, now: int, ttl_seconds: int) -> "TokenRecord":
        return cls(
            token=token,
            createdAt=now,
            expireAt=now + ttl_seconds,
            topics=[topic],
            lastSubscriptionAttemptAt=now,
        )

    def to_item(self) -> Dict[str, Any]:
        """Convert to a DynamoDB item, leaving out unset attributes."""
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "TokenRecord":
        return cls(
            token=item["token"],
            createdAt=int(item["createdAt"]),
            expireAt=int(item["expireAt"]),
            topics=list(item.get("topics", [])),
            fcmSubStatus=item.get("fcmSubStatus"),
            lastSubscriptionAttemptAt=(
                int(item["lastSubscriptionAttemptAt"])
                if item.get("lastSubscriptionAttemptAt") is not None else None
            ),
        )


@dataclass
class ValidationResult:
    outcome: ValidationOutcome
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.outcome == ValidationOutcome.VALID


@dataclass
class SubscriptionResult:
    status: SubscriptionStatus
    error: Optional[str] = None


@dataclass
class RecordOutcome:
    message_id: str
    state: RecordState
    error_kind: Optional[ErrorKind] = None
    detail: Optional[str] = None
    # Last state reached before the failing stage
    failed_at: Optional[RecordState] = None

    @property
    def succeeded(self) -> bool:
        return self.state in SUCCESS_STATES


@dataclass
class BatchResult:
    outcomes: List[RecordOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> List[str]:
        return [o.message_id for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> List[str]:
        return [o.message_id for o in self.outcomes if not o.succeeded]

    @property
    def batch_item_failures(self) -> List[Dict[str, str]]:
        return [{"itemIdentifier": message_id} for message_id in self.failed]

    def to_lambda_response(self) -> Dict[str, Any]:
        """
        Build the SQS partial batch response.

        Returns:
            Dict with statusCode, batchItemFailures and a JSON body
        """
        succeeded = self.succeeded
        failed = self.failed
        if failed:
            body = {
                "message": f"Some messages failed. {len(succeeded)} succeeded, {len(failed)} failed.",
                "successfulMessageIds": succeeded,
                "failedMessageIds": failed,
            }
        else:
            body = "All SQS messages processed successfully!"
        return {
            "statusCode": 200,
            "batchItemFailures": self.batch_item_failures,
            "body": json.dumps(body),
        }
