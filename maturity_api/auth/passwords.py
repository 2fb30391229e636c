import base64
import hashlib
import hmac
import secrets

from maturity_api.core import config


def hash_password(password: str, salt_b64: str | None = None) -> tuple[str, str]:
    salt = base64.b64decode(salt_b64) if salt_b64 else secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, config.PASSWORD_HASH_ITERATIONS)
    return base64.b64encode(digest).decode("utf-8"), base64.b64encode(salt).decode("utf-8")


def verify_password(password: str, expected_hash: str | None, salt_b64: str | None) -> bool:
    if not expected_hash or not salt_b64:
        return False
    computed, _ = hash_password(password, salt_b64)
    return hmac.compare_digest(computed, expected_hash)
