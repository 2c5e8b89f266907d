import base64
import json
import logging
from typing import Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, messaging

from .config import settings

logger = logging.getLogger(__name__)


def load_credentials_dict() -> Dict:
    """
    Load the Firebase service account from the environment.

    Either FIREBASE_SECRET (raw JSON, possibly double encoded) or
    FIREBASE_CREDENTIALS_BASE64 (base64 encoded JSON) must be set.

    Returns:
        Service account dictionary
    """
    if settings.firebase_secret:
        cert_dict = json.loads(settings.firebase_secret)
        if isinstance(cert_dict, str):
            cert_dict = json.loads(cert_dict)
        return cert_dict

    if settings.firebase_credentials_base64:
        decoded = base64.b64decode(settings.firebase_credentials_base64).decode("utf-8")
        return json.loads(decoded)

    logger.error("Firebase credentials not found in environment variables")
    raise ValueError("Firebase credentials not configured")


class FirebaseClient:
    """FCM client used to probe tokens and manage topic subscriptions."""

    PROBE_DATA = {"type": "validate_fcm_token"}

    def __init__(self, app: Optional[firebase_admin.App] = None):
        """
        Initialize the Firebase client.

        Args:
            app: An already initialized Firebase app. When omitted the default
                app is reused or created from configured credentials.
        """
        self.app = app
        if self.app is None:
            self.initialize()

    def initialize(self) -> None:
        """Initialize Firebase Admin SDK once per process."""
        try:
            self.app = firebase_admin.get_app()
            logger.info("Retrieved existing Firebase app")
        except ValueError:
            try:
                cred = credentials.Certificate(load_credentials_dict())
                self.app = firebase_admin.initialize_app(credential=cred)
                logger.info(f"Firebase app initialized. App name: {self.app.name}")
            except Exception as e:
                logger.critical(f"[CRITICAL_ERROR] Failed to initialize Firebase: {str(e)}")
                raise

    def send_probe(self, token: str, dry_run: bool = False) -> str:
        """
        Send a data-only message to a single token.

        Args:
            token: FCM registration token
            dry_run: Ask FCM to validate the message without delivering it

        Returns:
            The FCM message ID

        Raises:
            FirebaseError: If FCM rejects the message
        """
        message = messaging.Message(token=token, data=dict(self.PROBE_DATA))
        return messaging.send(message, dry_run=dry_run, app=self.app)

    def subscribe_to_topic(self, tokens: List[str], topic: str):
        """
        Subscribe tokens to an FCM topic.

        Returns:
            TopicManagementResponse with success_count, failure_count and errors

        Raises:
            FirebaseError: If the whole request fails
        """
        return messaging.subscribe_to_topic(tokens, topic, app=self.app)
