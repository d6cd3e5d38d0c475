"""
State token generation and the intranet authorization URL.
The state token is the only link between a Discord member and the OAuth2 redirect that comes back.
"""
import secrets
from urllib.parse import urlencode

# 32 bytes -> 64 hex chars (256 bits entropy)
STATE_TOKEN_BYTES = 32


def generate_state() -> str:
    """Opaque, unguessable correlator; returned by the provider in the callback."""
    return secrets.token_hex(STATE_TOKEN_BYTES)


def build_authorize_url(
    *,
    api_url: str,
    client_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
) -> str:
    """Build the intranet /oauth/authorize URL for the authorization code grant."""
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": scope,
        "state": state,
    }
    return f"{api_url}/oauth/authorize?{urlencode(params)}"
