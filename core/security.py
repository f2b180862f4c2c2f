import hashlib
import hmac
import secrets

PBKDF2_ITERATIONS = 260_000


def generate_token(length: int = 32) -> str:
    """Generate a secure random token."""
    return secrets.token_urlsafe(length)


def generate_otp_code(digits: int = 6) -> str:
    """Generate a numeric one-time verification code."""
    return "".join(secrets.choice("0123456789") for _ in range(digits))


def hash_password(password: str, salt: str | None = None) -> str:
    """
    Hash a password with salted PBKDF2-SHA256.

    Returns:
        "<salt>$<hex digest>"
    """
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS).hex()
    return f"{salt}${digest}"


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against its hash."""
    salt, _, _ = hashed.partition("$")
    return hmac.compare_digest(hash_password(password, salt), hashed)


def codes_match(expected: str, provided: str) -> bool:
    """Constant-time comparison of codes and secrets."""
    return hmac.compare_digest(expected.encode(), (provided or "").encode())
