"""
Email/password identity provider backed by the "account" collection.

Sessions are opaque tokens stored on the account document; signing in again
replaces the previous token.
"""
import logging
import re
import secrets
from typing import Callable, List, Optional, Tuple

from bson import ObjectId
from werkzeug.security import check_password_hash, generate_password_hash

from database import create_document
from errors import AccountCreationError, InvalidCredentials
from schemas import Account, Identity

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

AuthListener = Callable[[str, Optional[Identity]], None]


class MongoIdentityProvider:
    collection_name = "account"

    def __init__(self, database):
        self.database = database
        self.accounts = database[self.collection_name]
        self._listeners: List[AuthListener] = []

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """Call `listener(user_id, identity)` on every sign-in, and
        `listener(user_id, None)` on sign-out. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, user_id: str, identity: Optional[Identity]) -> None:
        for listener in list(self._listeners):
            listener(user_id, identity)

    def _start_session(self, account_id, email: str) -> Tuple[Identity, str]:
        token = secrets.token_urlsafe(32)
        self.accounts.update_one({"_id": account_id}, {"$set": {"token": token}})
        identity = Identity(user_id=str(account_id), email=email)
        self._notify(identity.user_id, identity)
        return identity, token

    def sign_up(self, email: str, password: str) -> Tuple[Identity, str]:
        email = email.strip().lower()
        if not EMAIL_RE.match(email) or len(password) < MIN_PASSWORD_LENGTH:
            raise AccountCreationError()
        if self.accounts.find_one({"email": email}) is not None:
            raise AccountCreationError()
        account = Account(email=email, password_hash=generate_password_hash(password))
        account_id = ObjectId(create_document(self.collection_name, account, database=self.database))
        logger.info(f"Account created for {email}")
        return self._start_session(account_id, email)

    def sign_in(self, email: str, password: str) -> Tuple[Identity, str]:
        email = email.strip().lower()
        doc = self.accounts.find_one({"email": email})
        if doc is None or not check_password_hash(doc["password_hash"], password):
            raise InvalidCredentials()
        logger.info(f"{email} signed in")
        return self._start_session(doc["_id"], email)

    def sign_out(self, token: str) -> None:
        doc = self.accounts.find_one({"token": token})
        if doc is None:
            return
        self.accounts.update_one({"_id": doc["_id"]}, {"$set": {"token": None}})
        logger.info(f"{doc['email']} signed out")
        self._notify(str(doc["_id"]), None)

    def current_user(self, token: Optional[str]) -> Optional[Identity]:
        if not token:
            return None
        doc = self.accounts.find_one({"token": token})
        if doc is None:
            return None
        return Identity(user_id=str(doc["_id"]), email=doc["email"])
