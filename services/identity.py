"""Identity & session management.

Sessions live in Redis under an opaque token. Three credential kinds are
accepted: phone + one-time code, email + password, and (outside production)
selecting an existing demo profile.
"""

import json
import logging
import re
from collections.abc import Awaitable, Callable

import redis.asyncio as redis
from pydantic import BaseModel

from core.config import Settings
from core.errors import Conflict, InvalidInput, PermissionDenied, PreconditionFailed, Unauthenticated
from core.metrics import sessions_created_total
from core.security import codes_match, generate_otp_code, generate_token, hash_password, verify_password
from services.entities import Account, Session
from services.repository import Repository

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"^\+[1-9]\d{7,14}$")
CODE_RE = re.compile(r"^\d{6}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 8

SmsSender = Callable[[str, str], Awaitable[None]]


class PhoneOtpCredential(BaseModel):
    phone: str
    code: str


class EmailPasswordCredential(BaseModel):
    email: str
    password: str
    create: bool = False


class DemoCredential(BaseModel):
    user_id: str


Credential = PhoneOtpCredential | EmailPasswordCredential | DemoCredential


def session_key(token: str) -> str:
    return f"session:{token}"


def otp_key(phone: str) -> str:
    return f"otp:{phone}"


def active_call_key(user_id: str) -> str:
    return f"active_call:{user_id}"


async def log_sms_sender(phone: str, code: str) -> None:
    """Stand-in for the SMS gateway: logs the code instead of delivering it."""
    logger.info(f"Verification code for {phone}: {code}")


class IdentityService:
    def __init__(
        self,
        repo: Repository,
        redis_client: redis.Redis,
        settings: Settings,
        sms_sender: SmsSender = log_sms_sender,
    ) -> None:
        self.repo = repo
        self.redis = redis_client
        self.settings = settings
        self.sms_sender = sms_sender

    async def send_otp(self, phone: str) -> None:
        """Generate a one-time code for the phone number and hand it to the SMS sender."""
        phone = phone.strip()
        if not PHONE_RE.match(phone):
            raise InvalidInput("Enter a valid phone number in international format, e.g. +15551234567")

        code = generate_otp_code()
        await self.redis.setex(otp_key(phone), self.settings.otp_ttl_seconds, code)
        await self.sms_sender(phone, code)

    async def establish_session(self, credential: Credential) -> tuple[str, Session]:
        """
        Verify a credential and open a session.

        Returns:
            (token, session) - the token is what clients send as a bearer token
        """
        if isinstance(credential, PhoneOtpCredential):
            account = await self._verify_phone(credential)
            method = "phone"
        elif isinstance(credential, EmailPasswordCredential):
            account = await self._verify_email(credential)
            method = "email"
        else:
            account = await self._verify_demo(credential)
            method = "demo"

        session = Session(user_id=account.id)
        token = generate_token()
        await self.redis.setex(
            session_key(token), self.settings.session_ttl_seconds, session.model_dump_json()
        )
        sessions_created_total.labels(method=method).inc()
        logger.info(f"Session established: user={account.id}, method={method}")
        return token, session

    async def get_session(self, token: str | None) -> Session | None:
        if not token:
            return None
        raw = await self.redis.get(session_key(token))
        if not raw:
            return None
        return Session.model_validate(json.loads(raw))

    async def end_session(self, token: str) -> None:
        session = await self.get_session(token)
        await self.redis.delete(session_key(token))
        if session:
            await self.redis.delete(active_call_key(session.user_id))
            logger.info(f"Session ended: user={session.user_id}")

    async def _verify_phone(self, credential: PhoneOtpCredential) -> Account:
        phone = credential.phone.strip()
        if not PHONE_RE.match(phone):
            raise InvalidInput("Enter a valid phone number in international format, e.g. +15551234567")
        if not CODE_RE.match(credential.code):
            raise InvalidInput("The verification code has 6 digits")

        expected = await self.redis.get(otp_key(phone))
        if not expected or not codes_match(expected, credential.code):
            raise Unauthenticated("Invalid or expired verification code")
        await self.redis.delete(otp_key(phone))

        account = await self.repo.get_account_by_phone(phone)
        if account is None:
            account = await self.repo.create_account(Account(phone=phone))
            logger.info(f"Account created for phone sign-in: {account.id}")
        return account

    async def _verify_email(self, credential: EmailPasswordCredential) -> Account:
        email = credential.email.strip().lower()
        if not EMAIL_RE.match(email):
            raise InvalidInput("Enter a valid email address")

        if credential.create:
            if len(credential.password) < MIN_PASSWORD_LENGTH:
                raise InvalidInput(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
            if await self.repo.get_account_by_email(email):
                raise Conflict("An account with this email already exists")
            account = await self.repo.create_account(
                Account(email=email, password_hash=hash_password(credential.password))
            )
            logger.info(f"Account created for email sign-up: {account.id}")
            return account

        account = await self.repo.get_account_by_email(email)
        if account is None or not account.password_hash:
            raise Unauthenticated("Invalid email or password")
        if not verify_password(credential.password, account.password_hash):
            raise Unauthenticated("Invalid email or password")
        return account

    async def _verify_demo(self, credential: DemoCredential) -> Account:
        if self.settings.is_production:
            raise PermissionDenied("Demo sign-in is disabled")
        profile = await self.repo.get_profile(credential.user_id)
        if profile is None:
            raise PreconditionFailed("No demo profile with this id")
        account = await self.repo.get_account(profile.id)
        if account is None:
            account = await self.repo.create_account(Account(id=profile.id, created_at=profile.created_at))
        return account

