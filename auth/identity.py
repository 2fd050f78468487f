"""
auth/identity.py -- Registration, password login, federated login and password reset.

Every public method returns an AuthOutcome instead of raising: the HTTP layer
decodes AuthOutcome.error exactly once into a status code. Store failures
(SQLAlchemyError) are logged with a traceback and surface as UNEXPECTED.

Federated login (identity linking):
  1. Match by federated_id. If the provider now reports a different email,
     the provider wins and the stored email is replaced.
  2. Else match by email -- a legacy local account -- and attach the
     federated_id to it.
  3. Else create a federated-only account (role USER, no password, name
     defaulting to the email local-part).
  4. Mark the email verified when the caller asserts it or when the account
     carries a federated_id after linking.
  5. One save() for all of the above.
  6. Verification gate, then token.

  Steps 1-5 are a read-then-write sequence. Two concurrent first logins for
  the same identity can both miss in steps 1-2; the UNIQUE constraints make
  the second insert fail with AccountConflictError and the whole sequence
  is re-run, which then finds the winner's record in step 1.

Password login timing:
  Unknown emails still pay for one bcrypt check against a dummy hash of the
  same cost, so response time does not reveal which emails are registered.
"""

from __future__ import annotations

import functools
import logging

from sqlalchemy.exc import SQLAlchemyError

from auth.models import Account, AuthErrorKind, AuthOutcome, Principal, Role
from auth.passwords import DEFAULT_ROUNDS, hash_password, verify_password
from auth.store import AccountConflictError, AccountStore
from auth.tokens import TokenService

logger = logging.getLogger("lostfound.auth.identity")

PENDING_VERIFICATION = "PENDING_VERIFICATION"

_LINK_ATTEMPTS = 3


def verification_gate(account: Account) -> AuthErrorKind | None:
    """Return EMAIL_NOT_VERIFIED when no token may be issued for account, else None."""
    if not account.email_verified:
        return AuthErrorKind.EMAIL_NOT_VERIFIED
    return None


def _store_errors_are_unexpected(method):
    """Turn store failures inside an IdentityService method into an UNEXPECTED outcome."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs) -> AuthOutcome:
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError:
            logger.exception("Store failure in %s", method.__name__)
            return AuthOutcome.failure(AuthErrorKind.UNEXPECTED)

    return wrapper


class IdentityService:
    """Reconciles local and federated identities into one account per person.

    Usage:
        identity = IdentityService(store, TokenService(secret_key))
        identity.register("alice@x.com", "pw123456")       # pending verification
        identity.federated_login("uid-1", "alice@x.com")   # links + verifies, returns token
        identity.login("alice@x.com", "pw123456")          # token
    """

    def __init__(self, store: AccountStore, tokens: TokenService, bcrypt_rounds: int = DEFAULT_ROUNDS) -> None:
        self.store = store
        self.tokens = tokens
        self.bcrypt_rounds = bcrypt_rounds
        # Same cost as real hashes so the unknown-email branch takes as long as a real check.
        self._dummy_hash = hash_password("lostfound_timing_dummy", bcrypt_rounds)

    # ------------------------------------------------------------------
    # Local accounts
    # ------------------------------------------------------------------

    @_store_errors_are_unexpected
    def register(self, email: str, password: str, name: str | None = None) -> AuthOutcome:
        """Create an unverified local account. Never issues a token."""
        if self.store.exists_by_email(email):
            return AuthOutcome.failure(AuthErrorKind.CONFLICT)
        account = Account(
            email=email,
            name=name,
            role=Role.USER,
            password_hash=hash_password(password, self.bcrypt_rounds),
            email_verified=False,
        )
        try:
            saved = self.store.save(account)
        except AccountConflictError:
            # Lost a race with a concurrent registration for the same email.
            return AuthOutcome.failure(AuthErrorKind.CONFLICT)
        logger.info("Registered account %s (pending verification)", saved.id)
        return AuthOutcome(account=saved)

    @_store_errors_are_unexpected
    def login(self, email: str, password: str) -> AuthOutcome:
        """Password login. Unknown email and wrong password are the same failure."""
        account = self.store.find_by_email(email)
        if account is None:
            verify_password(password, self._dummy_hash)
            return AuthOutcome.failure(AuthErrorKind.INVALID_CREDENTIALS)
        blocked = verification_gate(account)
        if blocked is not None:
            logger.info("Login refused for unverified account %s", account.id)
            return AuthOutcome.failure(blocked)
        if account.password_hash is None:
            # Federated-only account: there is no password to match.
            verify_password(password, self._dummy_hash)
            return AuthOutcome.failure(AuthErrorKind.INVALID_CREDENTIALS)
        if not verify_password(password, account.password_hash):
            return AuthOutcome.failure(AuthErrorKind.INVALID_CREDENTIALS)
        return AuthOutcome(account=account, token=self.tokens.issue(account.email))

    @_store_errors_are_unexpected
    def reset_password(self, email: str, new_password: str) -> AuthOutcome:
        account = self.store.find_by_email(email)
        if account is None:
            return AuthOutcome.failure(AuthErrorKind.NOT_FOUND)
        account.password_hash = hash_password(new_password, self.bcrypt_rounds)
        saved = self.store.save(account)
        logger.info("Password reset for account %s", saved.id)
        return AuthOutcome(account=saved)

    @_store_errors_are_unexpected
    def profile(self, principal: Principal) -> AuthOutcome:
        account = self.store.find_by_email(principal.email)
        if account is None:
            return AuthOutcome.failure(AuthErrorKind.NOT_FOUND)
        return AuthOutcome(account=account)

    # ------------------------------------------------------------------
    # Federated accounts
    # ------------------------------------------------------------------

    @_store_errors_are_unexpected
    def federated_login(
        self,
        federated_id: str,
        email: str,
        name: str | None = None,
        email_verified: bool | None = None,
    ) -> AuthOutcome:
        """Link a federated identity to one account and issue a token once verified.

        email_verified is the identity provider's claim, already parsed to
        True/False/None at the API boundary.
        """
        for attempt in range(1, _LINK_ATTEMPTS + 1):
            try:
                account = self._link(federated_id, email, name, email_verified)
                break
            except AccountConflictError:
                logger.warning("Federated link conflict for %s (attempt %d/%d)", email, attempt, _LINK_ATTEMPTS)
        else:
            return AuthOutcome.failure(AuthErrorKind.CONFLICT)

        blocked = verification_gate(account)
        if blocked is not None:
            return AuthOutcome(account=account, error=blocked)
        return AuthOutcome(account=account, token=self.tokens.issue(account.email))

    def _link(self, federated_id: str, email: str, name: str | None, email_verified: bool | None) -> Account:
        account = self.store.find_by_federated_id(federated_id)
        if account is not None:
            if account.email != email:
                logger.info("Account %s email updated from identity provider", account.id)
                account.email = email
        else:
            account = self.store.find_by_email(email)
            if account is not None:
                logger.info("Linking federated identity to existing account %s", account.id)
                account.federated_id = federated_id
            else:
                account = Account(
                    email=email,
                    federated_id=federated_id,
                    role=Role.USER,
                    name=name if name is not None else email.split("@")[0],
                )

        if email_verified is True or account.federated_id:
            account.email_verified = True

        return self.store.save(account)
