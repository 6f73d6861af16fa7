"""
Authentication service clients.

The application only needs account creation, password sign-in, session token
verification and password changes. `InMemoryAuthClient` is the test double;
`FirebaseAuthClient` talks to Firebase Authentication.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import threading
from dataclasses import dataclass, field
from typing import Optional, Protocol

import requests
from firebase_admin import auth as firebase_auth

from aura.errors import AuthenticationError, ConflictError, ValidationError

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"
REQUEST_TIMEOUT_SECONDS = 10
_PBKDF2_ITERATIONS = 100_000

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password."
WRONG_CURRENT_PASSWORD_MESSAGE = "The current password you entered is incorrect."


@dataclass(frozen=True)
class Session:
    uid: str
    id_token: str


class AuthClient(Protocol):
    """Operations the application needs from the authentication service."""

    def create_user(self, email: str, password: str) -> str:
        ...

    def delete_user(self, uid: str) -> None:
        ...

    def sign_in(self, email: str, password: str) -> Session:
        ...

    def verify_token(self, id_token: str) -> str:
        ...

    def reauthenticate(self, uid: str, password: str) -> None:
        ...

    def update_password(self, uid: str, new_password: str) -> None:
        ...


def _hash_password(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, _PBKDF2_ITERATIONS)


@dataclass
class _Account:
    uid: str
    email: str
    salt: bytes
    password_hash: bytes


@dataclass
class InMemoryAuthClient:
    """Test double for the authentication service."""

    accounts: dict = field(default_factory=dict)
    sessions: dict = field(default_factory=dict)

    def __post_init__(self):
        self._lock = threading.Lock()

    def _by_email(self, email: str) -> Optional[_Account]:
        normalized = email.strip().lower()
        for account in self.accounts.values():
            if account.email == normalized:
                return account
        return None

    def create_user(self, email: str, password: str) -> str:
        with self._lock:
            if self._by_email(email):
                raise ConflictError("An account already exists for this email.")
            uid = secrets.token_hex(14)
            salt = secrets.token_bytes(16)
            self.accounts[uid] = _Account(
                uid=uid,
                email=email.strip().lower(),
                salt=salt,
                password_hash=_hash_password(password, salt),
            )
            return uid

    def delete_user(self, uid: str) -> None:
        with self._lock:
            self.accounts.pop(uid, None)
            for token in [t for t, owner in self.sessions.items() if owner == uid]:
                del self.sessions[token]

    def sign_in(self, email: str, password: str) -> Session:
        account = self._by_email(email)
        if not account or not secrets.compare_digest(
            account.password_hash, _hash_password(password, account.salt)
        ):
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)
        token = secrets.token_urlsafe(32)
        with self._lock:
            self.sessions[token] = account.uid
        return Session(uid=account.uid, id_token=token)

    def verify_token(self, id_token: str) -> str:
        uid = self.sessions.get(id_token)
        if not uid:
            raise AuthenticationError("Invalid or expired session.")
        return uid

    def reauthenticate(self, uid: str, password: str) -> None:
        account = self.accounts.get(uid)
        if not account or not secrets.compare_digest(
            account.password_hash, _hash_password(password, account.salt)
        ):
            raise AuthenticationError(WRONG_CURRENT_PASSWORD_MESSAGE)

    def update_password(self, uid: str, new_password: str) -> None:
        account = self.accounts.get(uid)
        if not account:
            raise AuthenticationError("Invalid or expired session.")
        account.salt = secrets.token_bytes(16)
        account.password_hash = _hash_password(new_password, account.salt)


class FirebaseAuthClient:
    """
    Firebase Authentication. Account management and token verification go
    through the Admin SDK; password checks use the Identity Toolkit REST API,
    which the Admin SDK does not expose.
    """

    def __init__(self, web_api_key: Optional[str]):
        self.web_api_key = web_api_key

    def create_user(self, email: str, password: str) -> str:
        try:
            record = firebase_auth.create_user(email=email, password=password)
        except firebase_auth.EmailAlreadyExistsError as exc:
            raise ConflictError("An account already exists for this email.") from exc
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        return record.uid

    def delete_user(self, uid: str) -> None:
        firebase_auth.delete_user(uid)

    def _password_sign_in(self, email: str, password: str, message: str) -> dict:
        if not self.web_api_key:
            raise AuthenticationError("Password sign-in is not configured.")
        response = requests.post(
            IDENTITY_TOOLKIT_URL,
            params={"key": self.web_api_key},
            json={"email": email, "password": password, "returnSecureToken": True},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        if response.status_code != 200:
            logger.info("Password sign-in rejected: %s", response.status_code)
            raise AuthenticationError(message)
        return response.json()

    def sign_in(self, email: str, password: str) -> Session:
        payload = self._password_sign_in(email, password, INVALID_CREDENTIALS_MESSAGE)
        return Session(uid=payload["localId"], id_token=payload["idToken"])

    def verify_token(self, id_token: str) -> str:
        try:
            decoded = firebase_auth.verify_id_token(id_token)
        except (
            firebase_auth.InvalidIdTokenError,
            firebase_auth.ExpiredIdTokenError,
            firebase_auth.RevokedIdTokenError,
        ) as exc:
            raise AuthenticationError("Invalid or expired session.") from exc
        return decoded["uid"]

    def reauthenticate(self, uid: str, password: str) -> None:
        email = firebase_auth.get_user(uid).email
        payload = self._password_sign_in(email, password, WRONG_CURRENT_PASSWORD_MESSAGE)
        if payload.get("localId") != uid:
            raise AuthenticationError(WRONG_CURRENT_PASSWORD_MESSAGE)

    def update_password(self, uid: str, new_password: str) -> None:
        try:
            firebase_auth.update_user(uid, password=new_password)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
