import json
from unittest.mock import MagicMock

import pytest

from token_registrar.sms_alerts import SmsAlertBroadcaster

from conftest import client_error


@pytest.fixture
def member_table():
    table = MagicMock()
    table.query.side_effect = [
        {"Items": [{"phoneNum": "+821000000001"}, {}], "LastEvaluatedKey": {"phoneNum": "+821000000001"}},
        {"Items": [{"phoneNum": "+821000000002"}]},
    ]
    return table


@pytest.fixture
def sns():
    return MagicMock()


@pytest.fixture
def broadcaster(member_table, sns):
    return SmsAlertBroadcaster(member_table=member_table, sns=sns, max_workers=2)


def test_query_follows_pagination(broadcaster, member_table):
    assert broadcaster.get_phone_numbers("서울") == ["+821000000001", "+821000000002"]

    second_call = member_table.query.call_args_list[1].kwargs
    assert second_call["ExclusiveStartKey"] == {"phoneNum": "+821000000001"}
    assert second_call["IndexName"] == "address-index"


def test_broadcast_sends_transactional_sms(broadcaster, sns):
    response = broadcaster.handle_event({"region": "서울", "status": True})

    assert response["statusCode"] == 200
    assert sns.publish.call_count == 2
    kwargs = sns.publish.call_args.kwargs
    assert kwargs["Message"] == "서울에서 재난이 발생했습니다."
    assert kwargs["MessageAttributes"]["AWS.SNS.SMS.SMSType"]["StringValue"] == "Transactional"


def test_partial_sms_failure(broadcaster, sns):
    def publish(**kwargs):
        if kwargs["PhoneNumber"] == "+821000000002":
            raise client_error("InvalidParameter", "Publish")
        return {"MessageId": "1"}

    sns.publish.side_effect = publish

    response = broadcaster.handle_event({"body": json.dumps({"region": "서울"})})

    body = json.loads(response["body"])
    assert response["statusCode"] == 500
    assert body["totalSent"] == 1
    assert body["totalFailed"] == 1
    assert body["failed"][0]["number"] == "+821000000002"


def test_no_recipients(sns):
    table = MagicMock()
    table.query.return_value = {"Items": []}
    broadcaster = SmsAlertBroadcaster(member_table=table, sns=sns)

    response = broadcaster.handle_event({"region": "제주"})

    assert response["statusCode"] == 200
    sns.publish.assert_not_called()


def test_lookup_failure(sns):
    table = MagicMock()
    table.query.side_effect = client_error("ResourceNotFoundException", "Query")
    broadcaster = SmsAlertBroadcaster(member_table=table, sns=sns)

    assert broadcaster.handle_event({"region": "서울"})["statusCode"] == 500


@pytest.mark.parametrize("event", [
    {},
    {"region": ""},
    {"region": "미지정"},
    {"body": "{not json"},
])
def test_invalid_region_or_body(broadcaster, sns, event):
    assert broadcaster.handle_event(event)["statusCode"] == 400
    sns.publish.assert_not_called()
