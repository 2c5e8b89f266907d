import time


def mask_token(token: str) -> str:
    """Shorten a token for log output"""
    if not isinstance(token, str):
        return repr(token)
    return f"{token[:10]}..."


def epoch_seconds() -> int:
    return int(time.time())
