import json
import threading
from types import SimpleNamespace

import pytest
from botocore.exceptions import ClientError

from token_registrar.batch_processor import BatchProcessor
from token_registrar.subscription import SubscriptionManager
from token_registrar.token_store import TokenStore
from token_registrar.validator import TokenValidator

NOW = 1_700_000_000
TTL = 60 * 60 * 24 * 90
DEAD_CODES = ["registration-token-not-registered", "invalid-argument", "INVALID_ARGUMENT"]


def client_error(code: str, operation: str = "PutItem") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeTable:
    """In-memory stand-in for a boto3 DynamoDB Table keyed by token.

    Serves as its own meta.client, so calls arrive with TableName set.
    """

    name = "FcmToken"

    def __init__(self):
        self.items = {}
        self.fail_operations = set()
        self.calls = []
        self.table_names = set()
        self.meta = SimpleNamespace(client=self)
        self._lock = threading.Lock()

    def _maybe_fail(self, operation, table_name):
        self.table_names.add(table_name)
        if operation in self.fail_operations:
            raise client_error("ProvisionedThroughputExceededException", operation)

    def put_item(self, Item, TableName=None, ConditionExpression=None, ExpressionAttributeNames=None):
        with self._lock:
            self.calls.append(("put_item", Item["token"], ConditionExpression is not None))
            self._maybe_fail("PutItem", TableName)
            if ConditionExpression and Item["token"] in self.items:
                raise client_error("ConditionalCheckFailedException")
            self.items[Item["token"]] = dict(Item)
        return {}

    def delete_item(self, Key, TableName=None):
        with self._lock:
            self.calls.append(("delete_item", Key["token"]))
            self._maybe_fail("DeleteItem", TableName)
            self.items.pop(Key["token"], None)
        return {}

    def update_item(self, Key, UpdateExpression, ConditionExpression,
                    ExpressionAttributeNames, ExpressionAttributeValues, TableName=None):
        with self._lock:
            self.calls.append(("update_item", Key["token"]))
            self._maybe_fail("UpdateItem", TableName)
            if Key["token"] not in self.items:
                raise client_error("ConditionalCheckFailedException", "UpdateItem")
            self.items[Key["token"]]["expireAt"] = ExpressionAttributeValues[":expireAt"]
        return {}

    def get_item(self, Key, TableName=None):
        self.table_names.add(TableName)
        item = self.items.get(Key["token"])
        return {"Item": dict(item)} if item else {}


class FakeFirebaseClient:
    """Records probe and subscribe calls; errors are configured per token."""

    def __init__(self):
        self.probe_errors = {}
        self.subscribe_error = None
        self.subscribe_failures = set()
        self.probes = []
        self.subscriptions = []
        self._lock = threading.Lock()

    def send_probe(self, token, dry_run=False):
        with self._lock:
            self.probes.append((token, dry_run))
        if token in self.probe_errors:
            raise self.probe_errors[token]
        return f"projects/test/messages/{len(self.probes)}"

    def subscribe_to_topic(self, tokens, topic):
        with self._lock:
            self.subscriptions.append((list(tokens), topic))
        if self.subscribe_error is not None:
            raise self.subscribe_error
        failed = [i for i, token in enumerate(tokens) if token in self.subscribe_failures]
        return SimpleNamespace(
            success_count=len(tokens) - len(failed),
            failure_count=len(failed),
            errors=[SimpleNamespace(index=i, reason="INVALID_ARGUMENT") for i in failed],
        )


@pytest.fixture
def table():
    return FakeTable()


@pytest.fixture
def store(table):
    return TokenStore(table=table, ttl_seconds=TTL)


@pytest.fixture
def firebase():
    return FakeFirebaseClient()


@pytest.fixture
def validator(firebase, store):
    return TokenValidator(firebase, store, dead_token_codes=DEAD_CODES)


@pytest.fixture
def subscription_manager(firebase, store):
    return SubscriptionManager(firebase, store, clock=lambda: NOW + 5)


@pytest.fixture
def make_processor(validator, store, subscription_manager):
    def _make(**kwargs):
        return BatchProcessor(
            validator=validator,
            token_store=store,
            subscription_manager=subscription_manager,
            ttl_seconds=TTL,
            clock=lambda: NOW,
            **kwargs
        )
    return _make


@pytest.fixture
def processor(make_processor):
    return make_processor()


def sqs_record(message_id, token=None, topic="all", body=None):
    if body is None:
        body = json.dumps({"token": token, "topic": topic})
    return {"messageId": message_id, "receiptHandle": f"rh-{message_id}", "body": body}
