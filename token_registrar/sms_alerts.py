"""
Disaster SMS alerts.

Looks up the phone numbers registered for a region and sends each one a
transactional SMS through SNS. Independent of the token registration
pipeline: it shares no clients or state with it.
"""
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from .config import settings
from .token_store import create_table_resource

logger = logging.getLogger(__name__)

SMS_ATTRIBUTES = {
    "AWS.SNS.SMS.SMSType": {
        "DataType": "String",
        "StringValue": "Transactional",
    },
}


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {"statusCode": status_code, "body": json.dumps(body, ensure_ascii=False)}


class SmsAlertBroadcaster:
    """Sends region-wide disaster SMS alerts."""

    def __init__(self, member_table=None, sns=None, max_workers: int = 10):
        self.member_table = member_table if member_table is not None else create_table_resource(
            settings.member_table_name
        )
        self.sns = sns or boto3.client(
            "sns",
            region_name=settings.sms_region,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key
        )
        self.max_workers = max_workers

    def get_phone_numbers(self, region: str) -> List[str]:
        """
        Query the member region index, following pagination.

        Raises:
            ClientError: If the query fails
        """
        phone_numbers = []
        params = {
            "IndexName": settings.member_region_index,
            "KeyConditionExpression": Key("address").eq(region),
            "ProjectionExpression": "phoneNum",
        }
        while True:
            result = self.member_table.query(**params)
            for item in result.get("Items", []):
                if item.get("phoneNum"):
                    phone_numbers.append(item["phoneNum"])
            last_key = result.get("LastEvaluatedKey")
            if not last_key:
                break
            params["ExclusiveStartKey"] = last_key
        return phone_numbers

    def send_sms(self, number: str, message: str) -> Optional[Dict[str, str]]:
        """Publish one SMS. Returns None on success, a failure entry otherwise."""
        try:
            self.sns.publish(
                Message=message,
                PhoneNumber=number,
                MessageAttributes=SMS_ATTRIBUTES,
            )
            logger.info(f"SMS sent to {number}")
            return None
        except (ClientError, BotoCoreError) as e:
            logger.error(f"SMS to {number} failed: {str(e)}")
            return {"number": number, "error": str(e)}

    def broadcast(self, region: str) -> Dict[str, Any]:
        """
        Send the disaster message to every number registered for a region.

        Returns:
            Lambda-style response with statusCode and JSON body
        """
        message = settings.sms_message_template.format(region=region)

        try:
            phone_numbers = self.get_phone_numbers(region)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Phone number lookup failed: {str(e)}")
            return _response(500, {"message": "Phone number lookup failed", "error": str(e)})

        if not phone_numbers:
            logger.info(f"No phone numbers registered in {region}, no SMS sent")
            return _response(200, {"message": f"No SMS recipients ({region})", "region": region})

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            results = list(executor.map(lambda number: self.send_sms(number, message), phone_numbers))
        failed = [r for r in results if r is not None]

        if failed:
            return _response(500, {
                "message": "Some or all SMS messages failed",
                "failed": failed,
                "region": region,
                "totalSent": len(phone_numbers) - len(failed),
                "totalFailed": len(failed),
            })

        return _response(200, {
            "message": f"SMS sent ({region}, {len(phone_numbers)} recipients)",
            "region": region,
        })

    def handle_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Parse an invocation event ({"region", "status"} or an API Gateway body) and broadcast."""
        try:
            body = event.get("body")
            parsed = json.loads(body) if isinstance(body, str) else event
        except ValueError as e:
            logger.error(f"Failed to parse event body: {str(e)}")
            return _response(400, {"message": "Invalid event body format"})

        if not isinstance(parsed, dict):
            return _response(400, {"message": "Invalid event body format"})

        region = parsed.get("region")
        if not region or not isinstance(region, str) or region == settings.unspecified_region:
            logger.warning("Region is missing or undefined for SMS notification.")
            return _response(400, {"message": "A valid region is required."})

        logger.info(f"Broadcasting disaster SMS for {region} (status={parsed.get('status', False)})")
        return self.broadcast(region)
