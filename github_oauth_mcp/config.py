"""
Application configuration loaded from environment variables.

Uses pydantic-settings to define typed configuration that automatically reads
from environment variables (and a local .env file, if present). All config
comes from the environment, never hardcoded in source code.

The variable names match what a GitHub OAuth App setup produces:
- GITHUB_CLIENT_ID, GITHUB_CLIENT_SECRET: the OAuth App credentials
- REDIRECT_URI: the "Authorization callback URL" registered with the app
- PORT: where this server listens

Everything else has a sensible default and rarely needs to change.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Server configuration with environment variable bindings.

    Field names map to environment variables case-insensitively and without a
    prefix: `github_client_id` reads GITHUB_CLIENT_ID, `port` reads PORT.
    """

    # --- Server settings ---

    # "0.0.0.0" listens on all interfaces, which is required inside containers.
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "info"

    # --- OAuth App credentials ---

    # Both come from https://github.com/settings/developers -> "OAuth Apps".
    # The secret is only ever sent to GitHub's token endpoint; it is never
    # logged or echoed back in a response.
    github_client_id: str = ""
    github_client_secret: str = ""

    # Must match the callback URL registered with the OAuth App exactly.
    # Empty means "derive from the port" (see `callback_url`).
    redirect_uri: str = ""

    # Where the browser lands after the callback. The outcome is passed as
    # query parameters (success=true&access_token=... or error=<code>).
    post_auth_redirect: str = "/"

    # Requested when /auth/github is called without a `scopes` parameter.
    default_scopes: str = "repo,user"

    # --- Upstream endpoints ---

    github_api_base: str = "https://api.github.com"
    github_oauth_base: str = "https://github.com/login/oauth"
    upstream_timeout: float = 30.0
    user_agent: str = "github-oauth-mcp"

    # --- CSRF state tracking ---

    # A pending authorization is only honoured for this long.
    state_ttl_seconds: float = 600.0
    # How often the reaper evicts abandoned flows.
    state_sweep_interval_seconds: float = 600.0

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        # The .env file may hold variables for other tools (docker, the UI).
        "extra": "ignore",
    }

    @property
    def callback_url(self) -> str:
        """The redirect URI sent to GitHub, defaulting to this server's callback."""
        return self.redirect_uri or f"http://localhost:{self.port}/auth/callback"

    @property
    def oauth_configured(self) -> bool:
        return bool(self.github_client_id and self.github_client_secret)


# Singleton instance: import this from other modules.
settings = Settings()
