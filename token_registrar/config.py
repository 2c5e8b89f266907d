from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration settings for the Token Registrar Service"""

    # Application settings
    service_name: str = "token-registrar"
    log_level: str = "INFO"
    environment: str = "dev"

    # AWS settings
    aws_region: str = "ap-northeast-2"
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    dynamodb_endpoint_url: Optional[str] = None

    # Token table settings
    token_table_name: str = "FcmToken"
    token_ttl_seconds: int = 60 * 60 * 24 * 90  # 90 days
    refresh_existing_tokens: bool = False

    # Firebase settings
    firebase_secret: Optional[str] = None
    firebase_credentials_base64: Optional[str] = None

    # FCM validation settings
    probe_dry_run: bool = False
    dead_token_codes: List[str] = [
        "registration-token-not-registered",
        "messaging/registration-token-not-registered",
        "invalid-argument",
        "messaging/invalid-argument",
        "invalid-registration-token",
        "INVALID_ARGUMENT",
        "UNREGISTERED",
    ]

    # Batch processing settings
    record_concurrency: int = 1

    # SQS settings (polling consumer)
    queue_url: str = "http://localhost:9324/queue/fcm-token-registrations"
    sqs_max_messages: int = 10
    sqs_visibility_timeout: int = 60  # seconds
    sqs_wait_time: int = 20  # seconds

    # SMS alert settings
    sms_region: str = "ap-northeast-1"
    member_table_name: str = "Member"
    member_region_index: str = "address-index"
    sms_message_template: str = "{region}에서 재난이 발생했습니다."
    unspecified_region: str = "미지정"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )


# Create settings instance
settings = Settings()
