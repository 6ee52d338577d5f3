"""Startup: open the credential store and make sure a usable token set exists."""

import concurrent.futures
import logging
import os
import time
from dataclasses import replace
from typing import Any, Callable, Dict, Optional

from config import resolve_path
from managers.credential_manager import CredentialStore, Credentials
from spotify_api.auth import AuthorizationSession, OAuthAuthorizer, TokenRefresher, verify_client_info
from spotify_api.client import SpotifyClient
from spotify_api.context import ClientInfoContext
from spotify_api.errors import ConfigurationError
from spotify_api.token_manager import TokenInfo
from utils.logger import get_logger

ClientInfoPrompt = Callable[[Dict[str, str]], Optional[Dict[str, str]]]


def client_info_context(creds: Credentials) -> ClientInfoContext:
    return ClientInfoContext(
        client_id=creds.client_id,
        client_secret=creds.client_secret,
        redirect_uri=creds.redirect_uri,
        access_token=creds.access_token or "",
        refresh_token=creds.refresh_token or "",
    )


class Session:
    """Owns the store, client and token lifecycle for one run of the program.

    `prompt` is asked for client credentials when neither the store nor the
    config has them; `announce` receives the authorization URL.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        *,
        client: Optional[SpotifyClient] = None,
        store: Optional[CredentialStore] = None,
        authorizer: Optional[OAuthAuthorizer] = None,
        refresher: Optional[TokenRefresher] = None,
        prompt: Optional[ClientInfoPrompt] = None,
        announce: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.logger = logger or get_logger("session")
        self.clock = clock
        self.client = client or SpotifyClient(
            timeout=config.get("request_timeout", 30.0), market=config.get("market", "US")
        )
        self.authorizer = authorizer or OAuthAuthorizer(
            self.client,
            timeout=config.get("auth_timeout", 60.0),
            settle_delay=config.get("auth_settle_delay", 0.05),
            clock=clock,
        )
        self.refresher = refresher or TokenRefresher(
            self.client, timeout=config.get("refresh_timeout", 30.0), clock=clock
        )
        self.prompt = prompt
        self.announce = announce
        self._store = store
        self.credentials: Optional[Credentials] = None

    @property
    def store(self) -> CredentialStore:
        if self._store is None:
            self._store = self.open_store()
        return self._store

    def open_store(self) -> CredentialStore:
        config_dir = os.path.expanduser(self.config.get("config_dir", ""))
        if config_dir:
            os.makedirs(config_dir, exist_ok=True)
        return CredentialStore(resolve_path(self.config, "db_file"))

    def setup(self) -> Credentials:
        """Load credentials, logging in or refreshing as needed, and persist the result."""
        creds = self.store.load()
        if creds is None:
            creds = self._initial_credentials()
            self.store.insert(creds)

        if creds.is_new_login():
            self.logger.info("no stored tokens, starting authorization")
            creds = self._save(creds, self.authorize(creds))
        elif self.is_token_expired(creds):
            self.logger.info("access token expired, refreshing")
            creds = self._save(creds, self.refresher.refresh(client_info_context(creds)))

        self.credentials = creds
        return creds

    def login(self) -> Credentials:
        """Run a fresh authorization even when tokens are stored.

        Stored client info that no longer verifies is asked for again and
        written back before the browser flow starts.
        """
        creds = self.store.load()
        if creds is None:
            creds = self._initial_credentials()
            self.store.insert(creds)
        elif verify_client_info(client_info_context(creds)) is not None:
            info = self._resolve_client_info(
                {"client_id": creds.client_id, "client_secret": creds.client_secret, "redirect_uri": creds.redirect_uri}
            )
            self.store.update_client_info(**info)
            creds = replace(creds, **info)
        creds = self._save(creds, self.authorize(creds))
        self.credentials = creds
        return creds

    def refresh(self) -> Credentials:
        creds = self.credentials or self.store.load()
        if creds is None:
            raise ConfigurationError(["no stored credentials; run login first"])
        creds = self._save(creds, self.refresher.refresh(client_info_context(creds)))
        self.credentials = creds
        return creds

    def is_token_expired(self, creds: Optional[Credentials] = None) -> bool:
        creds = creds or self.credentials
        if creds is None:
            return True
        return creds.is_token_expired(now=self.clock())

    def authorize(self, creds: Credentials) -> TokenInfo:
        """Run the authorizer in a worker and hand its URL to `announce` meanwhile."""
        session = AuthorizationSession()
        with concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="authorize") as pool:
            future = pool.submit(self.authorizer.authorize, client_info_context(creds), session)
            concurrent.futures.wait([future, session.auth_url], return_when=concurrent.futures.FIRST_COMPLETED)
            if session.auth_url.done() and self.announce is not None:
                self.announce(session.auth_url.result())
            return future.result()

    def close(self) -> None:
        if self._store is not None:
            self._store.close()
        self.client.close()

    def _save(self, creds: Credentials, token: TokenInfo) -> Credentials:
        self.store.update(token)
        return creds.with_tokens(token)

    def _initial_credentials(self) -> Credentials:
        info = {
            "client_id": self.config.get("spotify_client_id") or "",
            "client_secret": self.config.get("spotify_client_secret") or "",
            "redirect_uri": self.config.get("spotify_redirect_uri") or "",
        }
        return Credentials(**self._resolve_client_info(info))

    def _resolve_client_info(self, info: Dict[str, str]) -> Dict[str, str]:
        if verify_client_info(ClientInfoContext(**info)) is not None and self.prompt is not None:
            prompted = self.prompt(info)
            if prompted is not None:
                info = prompted

        error = verify_client_info(ClientInfoContext(**info))
        if error is not None:
            raise error
        return info
