"""
Google OAuth2 for Gmail IMAP (XOAUTH2)

Access tokens come from the installed-app flow of google-auth-oauthlib: a
browser is opened for consent and a local HTTP server on a free port catches
the redirect. The resulting credentials are kept for the lifetime of the
process, so a later call refreshes silently through google-auth instead of
asking again.

Endpoints can be redirected with OAUTH2_GOOGLE_AUTH_URL and
OAUTH2_GOOGLE_TOKEN_URL (used against a local mock server in tests).
"""

from __future__ import annotations

import os
import sys

GMAIL_SCOPE = "https://mail.google.com/"
DEFAULT_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"

# (client_id, client_secret) -> google.oauth2.credentials.Credentials
_creds_cache = {}


def build_client_config(client_id, client_secret):
    """Client config in the "installed application" shape InstalledAppFlow expects."""
    return {
        "installed": {
            "client_id": client_id,
            "client_secret": client_secret,
            "auth_uri": os.getenv("OAUTH2_GOOGLE_AUTH_URL") or DEFAULT_AUTH_URI,
            "token_uri": os.getenv("OAUTH2_GOOGLE_TOKEN_URL") or DEFAULT_TOKEN_URI,
            "redirect_uris": ["http://localhost"],
        }
    }


def _refresh_cached(cache_key):
    """Returns a fresh token from cached credentials, or None if there is nothing usable."""
    creds = _creds_cache.get(cache_key)
    if not creds or not creds.refresh_token:
        return None
    try:
        import google.auth.transport.requests

        creds.refresh(google.auth.transport.requests.Request())
    except Exception as e:
        print(f"Could not refresh Google token silently ({e}), re-authenticating.")
        _creds_cache.pop(cache_key, None)
        return None
    return creds.token or None


def acquire_token(client_id, client_secret):
    """
    Returns a Google OAuth2 access token for IMAP, or None.

    Cached credentials are refreshed first; only when that is not possible is
    the browser consent flow started.
    """
    cache_key = (client_id, client_secret)
    token = _refresh_cached(cache_key)
    if token:
        return token

    try:
        from google_auth_oauthlib.flow import InstalledAppFlow
    except ImportError:
        print("Error: 'google-auth-oauthlib' package is required for Google OAuth2.")
        print("Install it with: pip install google-auth-oauthlib")
        sys.exit(1)

    flow = InstalledAppFlow.from_client_config(build_client_config(client_id, client_secret), scopes=[GMAIL_SCOPE])

    print("Opening browser for Google authentication...")
    print("If the browser does not open, check the terminal for a URL to visit.")
    credentials = flow.run_local_server(port=0)

    if credentials and credentials.token:
        _creds_cache[cache_key] = credentials
        return credentials.token

    print("Error: Could not acquire Google OAuth2 token.")
    return None


def acquire_token_or_exit(client_id, client_secret):
    """
    Acquires a token for the mirror run. Prints status lines and exits with
    status 1 when no token can be obtained.
    """
    if not client_secret:
        print(
            "Error: OAuth2 client secret is required for Google OAuth2. "
            "Provide --oauth2-client-secret or set SRC_OAUTH2_CLIENT_SECRET."
        )
        sys.exit(1)

    print("Acquiring OAuth2 token (google)...")
    token = acquire_token(client_id, client_secret)
    if not token:
        print("Error: Failed to acquire OAuth2 token.")
        sys.exit(1)
    print("OAuth2 token acquired successfully.\n")
    return token
