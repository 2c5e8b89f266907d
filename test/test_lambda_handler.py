import json
from unittest.mock import MagicMock

from firebase_admin import messaging

from token_registrar import lambda_handler

from conftest import sqs_record


def test_all_records_succeed(processor):
    event = {"Records": [sqs_record("m1", "token-lambda-01"), sqs_record("m2", "token-lambda-02")]}

    response = lambda_handler.handler(event, None, processor=processor)

    assert response["statusCode"] == 200
    assert response["batchItemFailures"] == []
    assert json.loads(response["body"]) == "All SQS messages processed successfully!"


def test_partial_failure_reports_failed_identifiers(processor, firebase):
    firebase.probe_errors["token-lambda-dead"] = messaging.UnregisteredError("gone")
    event = {"Records": [
        sqs_record("m1", "token-lambda-03"),
        sqs_record("m2", "token-lambda-dead"),
        sqs_record("m3", body="oops"),
    ]}

    response = lambda_handler.handler(event, None, processor=processor)

    assert response["statusCode"] == 200
    assert response["batchItemFailures"] == [{"itemIdentifier": "m2"}, {"itemIdentifier": "m3"}]
    body = json.loads(response["body"])
    assert body["successfulMessageIds"] == ["m1"]
    assert body["failedMessageIds"] == ["m2", "m3"]


def test_event_without_records(processor):
    response = lambda_handler.handler({}, None, processor=processor)

    assert response["batchItemFailures"] == []


def test_handler_uses_process_wide_processor(monkeypatch, processor):
    monkeypatch.setattr(lambda_handler, "get_processor", lambda: processor)

    response = lambda_handler.handler({"Records": [sqs_record("m1", "token-lambda-04")]})

    assert response["batchItemFailures"] == []


def test_sms_handler_delegates_to_broadcaster():
    broadcaster = MagicMock()
    broadcaster.handle_event.return_value = {"statusCode": 200, "body": "{}"}

    response = lambda_handler.sms_handler({"region": "서울"}, None, broadcaster=broadcaster)

    assert response["statusCode"] == 200
    broadcaster.handle_event.assert_called_once_with({"region": "서울"})
