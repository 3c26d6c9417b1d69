"""Login state machine for a reader source."""

import logging
import threading
from enum import Enum
from typing import Callable, Optional

from .credentials import CredentialStore
from .errors import AuthRejected, NetworkFailure


logger = logging.getLogger(__name__)

# Consecutive failures after which automatic updates stop asking for a login
# until the user retries manually.
MAX_AUTH_FAILURES = 3


class LoginState(str, Enum):
    NONE = "none"
    IN_PROGRESS = "in_progress"
    ACTIVE = "active"
    NO_AUTH = "no_auth"
    MIGRATE = "migrate"


class Authenticator:
    """Drives login attempts and tracks consecutive authentication failures.

    The login state is read from other threads, so every state change goes
    through the source's lock. The failure counter is only touched by the
    source's consumer.
    """

    def __init__(
        self,
        client,
        credentials: CredentialStore,
        email: str,
        password: str,
        lock=None,
        report_error: Optional[Callable[[str], None]] = None,
    ):
        self.client = client
        self.credentials = credentials
        self.email = email
        self.password = password
        self.failures = 0
        self._lock = lock or threading.RLock()
        self._report_error = report_error
        self._state = LoginState.NONE

    @property
    def state(self) -> LoginState:
        with self._lock:
            return self._state

    def _set_state(self, state: LoginState) -> bool:
        with self._lock:
            if self._state is LoginState.MIGRATE:
                return False
            if self._state is not state:
                logger.debug(f"Login state {self._state.value} -> {state.value}")
            self._state = state
            return True

    @property
    def is_active(self) -> bool:
        return self.state is LoginState.ACTIVE

    @property
    def migrated(self) -> bool:
        return self.state is LoginState.MIGRATE

    def may_auto_login(self) -> bool:
        """True when a periodic trigger is allowed to try logging in."""
        return self.state in (LoginState.NONE, LoginState.NO_AUTH) and self.failures < MAX_AUTH_FAILURES

    def migrate(self) -> None:
        with self._lock:
            self._state = LoginState.MIGRATE
        logger.info(f"Source for {self.email} is being migrated, stopping all network activity")

    def resume(self) -> None:
        """Treat a saved token as valid until the service rejects it."""
        if self.credentials.has_token and self.state is LoginState.NONE:
            self._set_state(LoginState.ACTIVE)

    def login(self, manual: bool = False) -> bool:
        """
        Request a fresh authorization token.

        Args:
            manual: True for user-initiated attempts, which are allowed past
                the failure ceiling and reset the counter

        Returns:
            True if the source is now logged in
        """
        state = self.state
        if state in (LoginState.IN_PROGRESS, LoginState.MIGRATE):
            logger.debug(f"Skipping login for {self.email}: state is {state.value}")
            return False

        if manual:
            if state is LoginState.NO_AUTH and self.failures >= MAX_AUTH_FAILURES:
                self.failures = 0
        elif not self.may_auto_login():
            logger.debug(f"Not logging in {self.email} automatically ({self.failures} failures)")
            return False

        if not self._set_state(LoginState.IN_PROGRESS):
            return False

        logger.info(f"Logging in as {self.email}")
        try:
            token = self.client.login(self.email, self.password)
        except (AuthRejected, NetworkFailure) as e:
            if self.migrated:
                return False
            logger.warning(f"Login failed for {self.email}: {e}")
            self._record_failure("Login failed")
            return False

        if self.migrated:
            logger.debug("Discarding login result after migration")
            return False

        self.credentials.set_token(token)
        self.failures = 0
        self._set_state(LoginState.ACTIVE)
        logger.info(f"Login succeeded for {self.email}")
        return True

    def auth_expired(self) -> None:
        """Handle a 401/403 answer to an authenticated request."""
        if not self.is_active:
            return
        logger.warning(f"Authorization for {self.email} was rejected, token dropped")
        self.credentials.clear()
        self._record_failure("Authorization expired")

    def _record_failure(self, reason: str) -> None:
        self.failures += 1
        if self.failures >= MAX_AUTH_FAILURES:
            if self._set_state(LoginState.NO_AUTH):
                message = (
                    f"{reason} for {self.email} after {self.failures} attempts; "
                    "automatic updates paused until the next manual login"
                )
                logger.error(message)
                if self._report_error:
                    self._report_error(message)
            return

        if self.state is LoginState.IN_PROGRESS:
            # Retryable on the next periodic trigger
            self._set_state(LoginState.NONE)
        else:
            self._set_state(LoginState.NO_AUTH)
