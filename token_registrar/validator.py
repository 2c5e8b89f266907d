import logging
from typing import Iterable, Optional

from firebase_admin import exceptions, messaging

from .firebase_client import FirebaseClient
from .schemas import ValidationOutcome, ValidationResult
from .token_store import TokenStore
from .token_utils import mask_token

logger = logging.getLogger(__name__)


def _error_code(error: Exception) -> Optional[str]:
    """Extract the provider error code, if the error carries one."""
    code = getattr(error, "code", None)
    return str(code) if code else None


class TokenValidator:
    """Confirms that a token is still registered with FCM."""

    DEAD_TOKEN_ERRORS = (messaging.UnregisteredError, exceptions.InvalidArgumentError)

    def __init__(self,
                 firebase_client: FirebaseClient,
                 token_store: TokenStore,
                 dead_token_codes: Iterable[str],
                 dry_run: bool = False):
        self.firebase = firebase_client
        self.store = token_store
        self.dead_token_codes = set(dead_token_codes)
        self.dry_run = dry_run

    def classify(self, error: Exception) -> ValidationOutcome:
        if isinstance(error, self.DEAD_TOKEN_ERRORS):
            return ValidationOutcome.DEAD
        code = _error_code(error)
        if code and code in self.dead_token_codes:
            return ValidationOutcome.DEAD
        return ValidationOutcome.TRANSIENT

    def validate(self, token: str, message_id: str = "-") -> ValidationResult:
        """
        Probe a token and classify the result.

        A DEAD token is removed from the token store. Removal is best-effort:
        a failed delete is logged and the outcome stays DEAD.

        Args:
            token: FCM registration token
            message_id: SQS message ID used for log correlation

        Returns:
            ValidationResult
        """
        try:
            self.firebase.send_probe(token, dry_run=self.dry_run)
            logger.info(f"[INFO] SQS Message ID: {message_id} - FCM token validated: {mask_token(token)}")
            return ValidationResult(ValidationOutcome.VALID)
        except Exception as e:
            code = _error_code(e)
            outcome = self.classify(e)
            logger.error(
                f"[ERROR_FCM_VALIDATE] SQS Message ID: {message_id} - FCM probe failed: "
                f"{code or 'UNKNOWN_FCM_ERROR'} - {str(e)}",
                extra={"token": mask_token(token), "outcome": outcome.value}
            )
            result = ValidationResult(outcome, error_code=code, error_message=str(e))

        if result.outcome == ValidationOutcome.DEAD:
            if self.store.delete(token):
                logger.info(
                    f"[INFO] SQS Message ID: {message_id} - Invalid token deleted from store: "
                    f"{mask_token(token)}"
                )
            else:
                logger.error(
                    f"[ERROR_DB_DELETE] SQS Message ID: {message_id} - Failed to delete invalid token: "
                    f"{mask_token(token)}"
                )
        else:
            logger.error(f"[ERROR_FCM_UNKNOWN] SQS Message ID: {message_id} - Unknown FCM error, token kept")

        return result
