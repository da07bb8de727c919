"""
Gateway configuration

Settings are read from environment variables. A dotenv file (by default
<DATA_DIR>/.env) is loaded first without overriding variables that are
already set in the environment.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = "/data"
DEV_COOKIE_SECRET = "dev-session-secret-change-in-production"


@dataclass
class GatewaySettings:
    """Runtime configuration for the gateway"""

    api_base_url: str = "https://cad.onshape.com/api"
    authorization_url: str = "https://oauth.onshape.com/oauth/authorize"
    token_url: str = "https://oauth.onshape.com/oauth/token"
    user_profile_url: str = "https://cad.onshape.com/api/users/sessioninfo"
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    callback_path: str = "/oauth/redirect"
    external_hostname: Optional[str] = None
    main_page_redirect: str = "https://github.com/camel-cam/camel"
    session_cookie_secret: str = DEV_COOKIE_SECRET
    session_cookie_name: str = "camel.sid"
    session_ttl_seconds: int = 86400
    session_prune_interval_seconds: int = 86400
    evaluation_timeout_seconds: float = 10.0
    data_dir: str = DEFAULT_DATA_DIR
    host: str = "0.0.0.0"
    http_port: int = 80
    https_port: int = 443
    behind_tls_proxy: bool = False

    @property
    def certs_dir(self) -> str:
        return os.path.join(self.data_dir, "certs")

    @property
    def has_client_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer value for {name}: {value!r}")
        return default


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric value for {name}: {value!r}")
        return default


def _bool_env(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if not value:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings(env_file: Optional[str] = None) -> GatewaySettings:
    """
    Build settings from the environment

    Args:
        env_file: Optional dotenv path (defaults to <DATA_DIR>/.env)

    Returns:
        GatewaySettings instance
    """
    data_dir = os.getenv("DATA_DIR", DEFAULT_DATA_DIR)
    env_path = env_file or os.path.join(data_dir, ".env")
    if os.path.exists(env_path):
        load_dotenv(env_path, override=False)
        logger.info(f"Loaded environment from {env_path}")

    defaults = GatewaySettings()
    settings = GatewaySettings(
        api_base_url=os.getenv("ONSHAPE_API_URL", defaults.api_base_url),
        authorization_url=os.getenv("ONSHAPE_AUTHORIZATION_URL", defaults.authorization_url),
        token_url=os.getenv("ONSHAPE_TOKEN_URL", defaults.token_url),
        user_profile_url=os.getenv("ONSHAPE_USER_PROFILE_URL", defaults.user_profile_url),
        client_id=os.getenv("ONSHAPE_APP_CLIENT_ID"),
        client_secret=os.getenv("ONSHAPE_APP_CLIENT_SECRET"),
        external_hostname=os.getenv("EXTERNAL_HOSTNAME") or None,
        main_page_redirect=os.getenv("MAIN_PAGE_REDIRECT", defaults.main_page_redirect),
        session_cookie_secret=os.getenv("SESSION_ID_COOKIE_SECRET", DEV_COOKIE_SECRET),
        session_ttl_seconds=_int_env("SESSION_TTL_SECONDS", defaults.session_ttl_seconds),
        session_prune_interval_seconds=_int_env(
            "SESSION_PRUNE_INTERVAL_SECONDS", defaults.session_prune_interval_seconds
        ),
        evaluation_timeout_seconds=_float_env("EVALUATION_TIMEOUT_SECONDS", defaults.evaluation_timeout_seconds),
        data_dir=data_dir,
        host=os.getenv("HOST", defaults.host),
        http_port=_int_env("HTTP_PORT", defaults.http_port),
        https_port=_int_env("HTTPS_PORT", defaults.https_port),
        behind_tls_proxy=_bool_env("BEHIND_TLS_PROXY"),
    )

    if not settings.has_client_credentials:
        logger.warning(
            "Onshape OAuth credentials not configured. "
            "Set ONSHAPE_APP_CLIENT_ID and ONSHAPE_APP_CLIENT_SECRET environment variables."
        )
    if settings.session_cookie_secret == DEV_COOKIE_SECRET:
        logger.warning("SESSION_ID_COOKIE_SECRET not set, using development secret")

    return settings
