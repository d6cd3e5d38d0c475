"""
Verification server configuration. Values come from the environment (.env in deployment).
No secrets in this file; credentials come from env only.
"""
import os

# 42 intranet OAuth2 application (identity provider)
FORTYTWO_CLIENT_ID = os.environ.get("FORTYTWO_CLIENT_ID", "")
FORTYTWO_CLIENT_SECRET = os.environ.get("FORTYTWO_CLIENT_SECRET", "")

# Callback URL where the intranet redirects after authorization; must be registered on the 42 app
FORTYTWO_REDIRECT_URI = os.environ.get("FORTYTWO_REDIRECT_URI", "http://127.0.0.1:3000/auth/callback")

FORTYTWO_API_URL = os.environ.get("FORTYTWO_API_URL", "https://api.intra.42.fr").rstrip("/")
FORTYTWO_SCOPE = os.environ.get("FORTYTWO_SCOPE", "public")

# Discord bot credentials, community (guild) and the role granted once verified
DISCORD_TOKEN = os.environ.get("DISCORD_TOKEN", "")
DISCORD_GUILD_ID = os.environ.get("DISCORD_GUILD_ID", "")
DISCORD_42_ROLE_ID = os.environ.get("DISCORD_42_ROLE_ID", "")
DISCORD_API_URL = os.environ.get("DISCORD_API_URL", "https://discord.com/api/v10").rstrip("/")

HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "3000"))

# Bearer token for /events and /admin. Empty disables those endpoints.
INTERNAL_API_TOKEN = os.environ.get("INTERNAL_API_TOKEN", "")

HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "10"))

DEBUG = os.environ.get("DEBUG", "").lower() in ("true", "1")

# Sweep every 5 minutes; a pending verification lives at most 10 minutes
SWEEP_INTERVAL_SECONDS = 300
VERIFICATION_MAX_AGE_SECONDS = 600
