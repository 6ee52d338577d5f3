import logging
import sqlite3
import threading
import time
from dataclasses import dataclass, replace
from typing import Optional

from spotify_api.errors import CredentialStoreError
from spotify_api.token_manager import TokenInfo, format_expires_at, parse_expires_at
from utils.logger import get_logger

SCHEMA = """
CREATE TABLE IF NOT EXISTS config (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    client_id TEXT NOT NULL,
    client_secret TEXT NOT NULL,
    redirect_uri TEXT NOT NULL,
    access_token TEXT,
    refresh_token TEXT,
    expires_at TEXT,
    authorized BOOLEAN NOT NULL DEFAULT 0
)
"""


@dataclass(frozen=True)
class Credentials:
    """The stored client registration plus the current token set."""

    client_id: str
    client_secret: str
    redirect_uri: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[float] = None
    authorized: bool = False

    def is_new_login(self) -> bool:
        """Both tokens are needed; a missing or empty one forces a new login."""
        return not self.access_token or not self.refresh_token

    def is_token_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return True
        now_ts = time.time() if now is None else now
        return now_ts >= self.expires_at

    def with_tokens(self, token: TokenInfo) -> "Credentials":
        # Never clear a refresh token the response did not replace.
        return replace(
            self,
            access_token=token.access_token or self.access_token,
            refresh_token=token.refresh_token or self.refresh_token,
            expires_at=token.expires_at,
            authorized=True,
        )

    def __repr__(self) -> str:
        return (
            f"Credentials(client_id={self.client_id!r}, redirect_uri={self.redirect_uri!r}, "
            f"expires_at={self.expires_at!r}, authorized={self.authorized!r})"
        )


class CredentialStore:
    """Single-row sqlite table holding the client registration and tokens."""

    def __init__(self, db_path: str, *, logger: Optional[logging.Logger] = None):
        self.db_path = db_path
        self.logger = logger or get_logger("store")
        self._lock = threading.Lock()
        self._closed = False
        try:
            # Effects persist tokens from worker threads.
            self.conn = sqlite3.connect(db_path, check_same_thread=False)
            self.conn.execute(SCHEMA)
            self.conn.commit()
        except sqlite3.Error as e:
            raise CredentialStoreError(f"unable to open credential store {db_path!r}: {e}") from e
        self.logger.debug("opened credential store %s", db_path)

    @property
    def closed(self) -> bool:
        return self._closed

    def load(self) -> Optional[Credentials]:
        """Return the stored row, or None on first run."""
        with self._lock:
            self._ensure_open()
            try:
                row = self.conn.execute(
                    "SELECT client_id, client_secret, redirect_uri, access_token, refresh_token, expires_at, authorized "
                    "FROM config WHERE id = 1"
                ).fetchone()
            except sqlite3.Error as e:
                raise CredentialStoreError(f"unable to read credentials: {e}") from e

        if row is None:
            return None

        client_id, client_secret, redirect_uri, access_token, refresh_token, expires_at, authorized = row
        expires_ts = None
        if expires_at:
            try:
                expires_ts = parse_expires_at(expires_at)
            except ValueError as e:
                raise CredentialStoreError(f"stored expiry is malformed: {expires_at!r}") from e

        return Credentials(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_ts,
            authorized=bool(authorized),
        )

    def insert(self, initial: Credentials) -> None:
        """Create the row for a first run; tokens stay empty until authorized."""
        with self._lock:
            self._ensure_open()
            try:
                self.conn.execute(
                    "INSERT INTO config (id, client_id, client_secret, redirect_uri, authorized) VALUES (1, ?, ?, ?, 0)",
                    (initial.client_id, initial.client_secret, initial.redirect_uri),
                )
                self.conn.commit()
            except sqlite3.IntegrityError as e:
                raise CredentialStoreError("credentials row already exists") from e
            except sqlite3.Error as e:
                raise CredentialStoreError(f"unable to insert credentials: {e}") from e
        self.logger.info("stored client registration")

    def update(self, tokens: TokenInfo) -> None:
        """Persist a token set and mark the row authorized."""
        with self._lock:
            self._ensure_open()
            try:
                cursor = self.conn.execute(
                    "UPDATE config SET access_token = ?, refresh_token = COALESCE(?, refresh_token), "
                    "expires_at = ?, authorized = 1 WHERE id = 1",
                    (tokens.access_token, tokens.refresh_token or None, format_expires_at(tokens.expires_at)),
                )
                self.conn.commit()
            except sqlite3.Error as e:
                raise CredentialStoreError(f"unable to update tokens: {e}") from e
        if cursor.rowcount == 0:
            raise CredentialStoreError("no credentials row to update")
        self.logger.debug("stored refreshed tokens")

    def update_client_info(self, client_id: str, client_secret: str, redirect_uri: str) -> None:
        with self._lock:
            self._ensure_open()
            try:
                self.conn.execute(
                    "UPDATE config SET client_id = ?, client_secret = ?, redirect_uri = ? WHERE id = 1",
                    (client_id, client_secret, redirect_uri),
                )
                self.conn.commit()
            except sqlite3.Error as e:
                raise CredentialStoreError(f"unable to update client info: {e}") from e

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self.conn.close()
        self.logger.debug("closed credential store")

    def _ensure_open(self) -> None:
        if self._closed:
            raise CredentialStoreError("credential store is closed")
