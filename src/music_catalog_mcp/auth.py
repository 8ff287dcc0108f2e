"""Credentials and configuration for the Apple Music API.

Everything lives in ~/.config/music-catalog-mcp/:

- config.json: team_id, key_id, private_key_path, optional storefront and
  preferences
- developer_token.json: the signed developer JWT and its expiry
- music_user_token.json: the Music User Token captured by `authorize`

Environment variables (APPLE_MUSIC_DEVELOPER_TOKEN, APPLE_MUSIC_USER_TOKEN,
APPLE_MUSIC_STOREFRONT) take precedence. They are only read here, in
load_credentials(); clients get their credentials passed in.
"""

import json
import logging
import os
import time
import webbrowser
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs

import jwt

from .client import DEFAULT_STOREFRONT
from .models import AuthorizationToken
from .pacing import DEFAULT_REQUEST_DELAY
from .sync import DEFAULT_SETTLE_DELAY

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "music-catalog-mcp"
USER_TOKEN_LIFETIME_DAYS = 180


def get_config_dir() -> Path:
    """Get or create the config directory."""
    config_dir = DEFAULT_CONFIG_DIR
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def load_config() -> dict:
    """Load configuration from config.json."""
    config_file = get_config_dir() / "config.json"
    if not config_file.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_file}\n"
            "Create it with your Apple Developer credentials (team_id, key_id, private_key_path)."
        )
    with open(config_file) as f:
        return json.load(f)


def _load_config_or_empty() -> dict:
    try:
        return load_config()
    except (FileNotFoundError, json.JSONDecodeError):
        return {}


def get_preferences() -> dict:
    """Pipeline timing preferences with defaults.

    Returns:
        dict with keys:
        - settle_delay: seconds to wait after a library add (default 2.0)
        - request_delay: seconds between API calls (default 0.1)
    """
    prefs = _load_config_or_empty().get("preferences", {})
    return {
        "settle_delay": float(prefs.get("settle_delay", DEFAULT_SETTLE_DELAY)),
        "request_delay": float(prefs.get("request_delay", DEFAULT_REQUEST_DELAY)),
    }


def get_storefront() -> str:
    """Storefront (country code) for catalog requests."""
    env = os.environ.get("APPLE_MUSIC_STOREFRONT")
    if env:
        return env.lower()
    return _load_config_or_empty().get("storefront", DEFAULT_STOREFRONT)


def get_private_key_path(config: dict) -> Path:
    """Resolve the private key path from config."""
    path = Path(config["private_key_path"]).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Private key not found: {path}")
    return path


def generate_developer_token(expiry_days: int = 180) -> str:
    """Sign a developer token (ES256 JWT, at most 180 days) and save it."""
    config = load_config()
    key_path = get_private_key_path(config)
    private_key = key_path.read_text()

    now = int(time.time())
    exp = now + min(expiry_days, 180) * 86400

    token = jwt.encode(
        {"iss": config["team_id"], "iat": now, "exp": exp},
        private_key,
        algorithm="ES256",
        headers={"alg": "ES256", "kid": config["key_id"]},
    )

    token_file = get_config_dir() / "developer_token.json"
    with open(token_file, "w") as f:
        json.dump({"token": token, "created": now, "expires": exp}, f, indent=2)

    logger.info("Developer token written to %s", token_file)
    return token


def get_developer_token() -> str:
    """Get the saved developer token or raise if missing or expiring within a day."""
    token_file = get_config_dir() / "developer_token.json"
    if not token_file.exists():
        raise FileNotFoundError(
            "Developer token not found. Run: music-catalog-mcp generate-token"
        )

    with open(token_file) as f:
        data = json.load(f)

    token = data.get("token") if isinstance(data, dict) else None
    expires = data.get("expires") if isinstance(data, dict) else None
    if not isinstance(token, str) or not token or not isinstance(expires, (int, float)):
        raise ValueError(
            f"Developer token file {token_file} is invalid. Run: music-catalog-mcp generate-token"
        )

    if expires < time.time() + 86400:
        raise ValueError(
            "Developer token expired or expiring soon. Run: music-catalog-mcp generate-token"
        )
    return token


def load_user_token() -> Optional[AuthorizationToken]:
    """The saved Music User Token, or None if it was never saved."""
    token_file = get_config_dir() / "music_user_token.json"
    if not token_file.exists():
        return None

    try:
        with open(token_file) as f:
            data = json.load(f)
    except json.JSONDecodeError:
        logger.warning("Ignoring unreadable %s", token_file)
        return None

    value = data.get("music_user_token", "")
    if not value:
        return None
    expires = data.get("expires")
    if expires is None:
        # Tokens saved without an expiry are treated as fresh
        expires = time.time() + USER_TOKEN_LIFETIME_DAYS * 86400
    return AuthorizationToken(value=value, expires_at=float(expires))


def save_user_token(token: str, lifetime_days: int = USER_TOKEN_LIFETIME_DAYS) -> AuthorizationToken:
    """Save the Music User Token with its expiry."""
    now = time.time()
    auth_token = AuthorizationToken(value=token, expires_at=now + lifetime_days * 86400)
    token_file = get_config_dir() / "music_user_token.json"
    with open(token_file, "w") as f:
        json.dump(
            {
                "music_user_token": token,
                "created": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(now)),
                "expires": int(auth_token.expires_at),
            },
            f,
            indent=2,
        )
    return auth_token


@dataclass(frozen=True)
class Credentials:
    developer_token: str
    user_token: Optional[AuthorizationToken]
    storefront: str


def load_credentials() -> Credentials:
    """Collect credentials from the environment, then the config directory.

    Missing credentials are not an error here: the client reports them as
    NotConfigured when an operation needs them.
    """
    developer_token = os.environ.get("APPLE_MUSIC_DEVELOPER_TOKEN", "")
    if not developer_token:
        try:
            developer_token = get_developer_token()
        except (FileNotFoundError, ValueError) as e:
            logger.debug("No developer token: %s", e)
            developer_token = ""

    env_user_token = os.environ.get("APPLE_MUSIC_USER_TOKEN", "")
    if env_user_token:
        user_token = AuthorizationToken(
            value=env_user_token,
            expires_at=time.time() + USER_TOKEN_LIFETIME_DAYS * 86400,
        )
    else:
        user_token = load_user_token()

    return Credentials(developer_token, user_token, get_storefront())


def token_expiration_warning() -> Optional[str]:
    """Warning if the developer token expires within 30 days, else None."""
    token_file = get_config_dir() / "developer_token.json"
    if not token_file.exists():
        return None

    try:
        with open(token_file) as f:
            data = json.load(f)
    except json.JSONDecodeError:
        return None

    expires = data.get("expires") if isinstance(data, dict) else None
    if not isinstance(expires, (int, float)):
        return None
    days_left = (expires - time.time()) / 86400
    if days_left < 30:
        return f"⚠️ Developer token expires in {int(days_left)} days. Run: music-catalog-mcp generate-token"
    return None


def create_auth_html(developer_token: str, port: int) -> str:
    """Page that runs MusicKit JS authorization and posts the token back to us."""
    return f'''<!DOCTYPE html>
<html>
<head>
    <title>Music Catalog MCP Authorization</title>
    <style>
        body {{ font-family: -apple-system, sans-serif; max-width: 560px; margin: 50px auto; }}
        .success {{ color: #16a34a; }}
        .error {{ color: #dc2626; }}
    </style>
</head>
<body>
    <h1>Authorize Apple Music</h1>
    <p>Allow Music Catalog MCP to add songs and playlists to your library.</p>
    <button id="authButton" onclick="authorize()" disabled>Authorize</button>
    <div id="status"></div>
    <script src="https://js-cdn.music.apple.com/musickit/v3/musickit.js" data-web-components async></script>
    <script>
        const status = document.getElementById('status');
        const button = document.getElementById('authButton');

        document.addEventListener('musickitloaded', async () => {{
            try {{
                await MusicKit.configure({{
                    developerToken: "{developer_token}",
                    app: {{ name: 'Music Catalog MCP', build: '1.0.0' }}
                }});
                button.disabled = false;
            }} catch (err) {{
                status.innerHTML = '<p class="error">MusicKit failed to load: ' + err.message + '</p>';
            }}
        }});

        async function authorize() {{
            button.disabled = true;
            try {{
                const token = await MusicKit.getInstance().authorize();
                const response = await fetch('http://localhost:{port}/save-token', {{
                    method: 'POST',
                    headers: {{ 'Content-Type': 'application/x-www-form-urlencoded' }},
                    body: 'token=' + encodeURIComponent(token)
                }});
                if (!response.ok) throw new Error('server rejected the token');
                status.innerHTML = '<p class="success">Authorized. You can close this window.</p>';
            }} catch (err) {{
                status.innerHTML = '<p class="error">Failed: ' + err.message + '</p>';
                button.disabled = false;
            }}
        }}
    </script>
</body>
</html>'''


def run_auth_server(port: int = 8765) -> Optional[str]:
    """Serve the authorization page locally and wait for the user token."""
    developer_token = get_developer_token()
    auth_html = create_auth_html(developer_token, port).encode()
    captured = {"token": None}

    class AuthHandler(BaseHTTPRequestHandler):
        def log_message(self, format, *args):
            logger.debug("auth server: " + format, *args)

        def do_GET(self):
            if self.path in ("/", "/auth.html"):
                self.send_response(200)
                self.send_header("Content-type", "text/html")
                self.end_headers()
                self.wfile.write(auth_html)
            else:
                self.send_response(404)
                self.end_headers()

        def do_POST(self):
            if self.path != "/save-token":
                self.send_response(404)
                self.end_headers()
                return

            length = int(self.headers.get("Content-Length", 0))
            params = parse_qs(self.rfile.read(length).decode("utf-8"))
            token = params.get("token", [None])[0]
            if not token:
                self.send_response(400)
                self.end_headers()
                return

            save_user_token(token)
            captured["token"] = token
            self.send_response(200)
            self.send_header("Access-Control-Allow-Origin", "*")
            self.end_headers()

        def do_OPTIONS(self):
            self.send_response(200)
            self.send_header("Access-Control-Allow-Origin", "*")
            self.send_header("Access-Control-Allow-Methods", "POST, OPTIONS")
            self.send_header("Access-Control-Allow-Headers", "Content-Type")
            self.end_headers()

    server = HTTPServer(("localhost", port), AuthHandler)
    server.timeout = 1

    url = f"http://localhost:{port}/auth.html"
    print(f"Opening {url} for Apple Music authorization...")
    print("Waiting for authorization... (Ctrl+C to cancel)")
    webbrowser.open(url)

    try:
        while captured["token"] is None:
            server.handle_request()
    except KeyboardInterrupt:
        print("\nCancelled.")
        return None
    finally:
        server.server_close()

    print("✓ Token saved.")
    return captured["token"]
