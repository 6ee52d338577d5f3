import webbrowser
from typing import Dict, Optional

import questionary

from spotify_api.auth import check_spotify_credentials, spotify_app_setup_instructions
from utils.logger import log_error, log_info, log_warning


def show_setup_help(redirect_uri: str) -> None:
    log_info("\n" + "=" * 72)
    log_info("SPOTIFY APP SETUP")
    log_info("=" * 72)
    log_info(spotify_app_setup_instructions(redirect_uri=redirect_uri))
    log_info("=" * 72 + "\n")


def prompt_client_info(defaults: Dict[str, str]) -> Optional[Dict[str, str]]:
    """Ask for the client id, secret and redirect uri.

    Values already present in `defaults` pre-fill the prompts. Returns None
    when the user cancels.
    """
    redirect_default = defaults.get("redirect_uri") or "http://127.0.0.1:8888/callback"
    show_setup_help(redirect_default)

    while True:
        client_id = questionary.text("Spotify Client ID:", default=defaults.get("client_id") or "").ask()
        if client_id is None:
            return None
        client_secret = questionary.password("Spotify Client Secret:").ask()
        if client_secret is None:
            return None
        if not client_secret.strip():
            client_secret = defaults.get("client_secret") or ""
        redirect_uri = questionary.text("Redirect URI:", default=redirect_default).ask()
        if redirect_uri is None:
            return None

        info = {
            "client_id": client_id.strip(),
            "client_secret": client_secret.strip(),
            "redirect_uri": redirect_uri.strip(),
        }
        status = check_spotify_credentials(info["client_id"], info["client_secret"], info["redirect_uri"])
        if status["ok"]:
            return info

        log_warning(status["message"])
        if not questionary.confirm("Try again?", default=True).ask():
            return None


def announce_authorize_url(url: str, *, open_browser: bool = True) -> None:
    """Show the authorize URL and optionally open it in the default browser."""
    log_info("\n" + "=" * 72)
    log_info("SPOTIFY AUTHENTICATION")
    log_info("=" * 72)
    log_info("Approve access in the browser; this window continues on its own.")
    log_info(f"Authorize URL:\n{url}")
    log_info("=" * 72)

    if not open_browser:
        return
    try:
        webbrowser.open(url)
    except webbrowser.Error as e:
        log_error(f"Could not open a browser: {e}")
