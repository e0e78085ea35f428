"""
Google OAuth credential handling for the web and command-line shells.
"""
import json
import logging
import os
from typing import Any, Dict, Optional

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow, InstalledAppFlow

from streetview_drive_migration.config import GoogleConfig
from streetview_drive_migration.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


def build_web_flow(config: GoogleConfig, redirect_uri: str, state: Optional[str] = None) -> Flow:
    """Create the OAuth web flow used by the login and callback routes."""
    try:
        flow = Flow.from_client_secrets_file(config.client_secrets_file, scopes=config.scopes, state=state)
    except (OSError, ValueError) as e:
        raise AuthenticationError(f"Cannot read client secrets '{config.client_secrets_file}': {e}") from e
    flow.redirect_uri = redirect_uri
    return flow


def credentials_to_dict(credentials: Credentials) -> Dict[str, Any]:
    """Serializable form of credentials for storing in a web session."""
    return {
        'token': credentials.token,
        'refresh_token': credentials.refresh_token,
        'token_uri': credentials.token_uri,
        'client_id': credentials.client_id,
        'client_secret': credentials.client_secret,
        'scopes': list(credentials.scopes or []),
    }


def credentials_from_dict(data: Optional[Dict[str, Any]]) -> Credentials:
    """
    Rebuild credentials from a web session, refreshing them when expired.

    Raises:
        AuthenticationError: If no credentials are stored or the refresh fails
    """
    if not data or not data.get('token'):
        raise AuthenticationError("User is not authenticated.")

    credentials = Credentials(
        token=data['token'],
        refresh_token=data.get('refresh_token'),
        token_uri=data.get('token_uri'),
        client_id=data.get('client_id'),
        client_secret=data.get('client_secret'),
        scopes=data.get('scopes'),
    )
    return ensure_valid(credentials)


def ensure_valid(credentials: Credentials) -> Credentials:
    """
    Refresh expired credentials in place.

    Raises:
        AuthenticationError: If Google rejects the refresh or cannot be reached
    """
    if credentials.expired and credentials.refresh_token:
        try:
            credentials.refresh(Request())
        except RefreshError as e:
            raise AuthenticationError(f"Failed to refresh Google credentials: {e}") from e
        except TransportError as e:
            raise AuthenticationError(f"Could not reach Google to refresh credentials: {e}") from e
    return credentials


def load_saved_token(config: GoogleConfig) -> Optional[Credentials]:
    """Load a token saved by a previous login, if token saving is enabled."""
    token_path = config.token_path
    if not config.save_token or not token_path.exists():
        return None
    try:
        credentials = Credentials.from_authorized_user_file(str(token_path), config.scopes)
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable token file {token_path}: {e}")
        return None
    logger.info(f"Loaded token from {token_path}")
    return ensure_valid(credentials)


def save_token(config: GoogleConfig, credentials: Credentials) -> None:
    """Persist credentials when token saving is enabled."""
    if not config.save_token:
        return
    token_path = config.token_path
    token_path.parent.mkdir(parents=True, exist_ok=True)
    with open(token_path, 'w') as f:
        f.write(credentials.to_json())
    # Best-effort: some filesystems do not support POSIX permissions.
    try:
        os.chmod(token_path, 0o600)
    except OSError as e:
        logger.debug(f"Could not restrict permissions on {token_path}: {e}")
    logger.info(f"Saved token to {token_path}")


def installed_app_credentials(config: GoogleConfig) -> Credentials:
    """
    Credentials for the command-line shell.

    Reuses a saved token when possible, otherwise runs the local-server
    OAuth flow and saves the result.
    """
    credentials = load_saved_token(config)
    if credentials is not None and credentials.valid:
        return credentials

    try:
        flow = InstalledAppFlow.from_client_secrets_file(config.client_secrets_file, config.scopes)
    except (OSError, ValueError, json.JSONDecodeError) as e:
        raise AuthenticationError(f"Cannot read client secrets '{config.client_secrets_file}': {e}") from e
    credentials = flow.run_local_server(port=0)
    save_token(config, credentials)
    return credentials
