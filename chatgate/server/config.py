"""Server configuration."""
import base64
import binascii
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

_RECOGNISED_BOOL_VALUES = frozenset(
    ("1", "true", "yes", "0", "false", "no")
)


@dataclass(frozen=True)
class AuthConfig:
    """Bearer token verification.

    ``public_key`` is the raw 32-byte Ed25519 key that signs the tokens
    clients present. ``leeway_seconds`` tolerates clock skew on ``exp``.
    """

    public_key: bytes
    leeway_seconds: int = 30


@dataclass(frozen=True)
class SessionConfig:
    auth_dir: Path = field(default_factory=lambda: Path("data/sessions"))
    bootstrap_poll_interval: float = 1.0
    bootstrap_max_attempts: int = 15
    sweep_interval: float = 60.0
    contacts_limit: int = 5000
    chats_limit: int = 1000
    messages_limit: int = 1000


@dataclass(frozen=True)
class ReconnectConfig:
    base_delay: float = 2.0
    exponent_cap: int = 5
    max_delay: float = 30.0
    max_attempts: int = 10
    restart_delay: float = 1.0


@dataclass(frozen=True)
class HumanizeConfig:
    """Presence simulation before text sends.

    Disable with ``HUMANIZE_ENABLED=false`` to send immediately.
    """

    enabled: bool = True
    presence_pause: float = 0.5
    typing_delay_per_char: float = 0.05
    typing_delay_max: float = 3.0


@dataclass(frozen=True)
class BridgeConfig:
    url: str = "http://localhost:3001"
    api_key: str = ""
    timeout: float = 30.0
    max_retries: int = 3


@dataclass(frozen=True)
class BillingConfig:
    """Credit prices. Zero disables charging for that operation."""

    session_cost: int = 0
    validation_cost: int = 0


@dataclass(frozen=True)
class RateLimitConfig:
    requests_per_minute: int = 120


@dataclass(frozen=True)
class ServerConfig:
    auth: AuthConfig
    sessions: SessionConfig = field(default_factory=SessionConfig)
    reconnect: ReconnectConfig = field(default_factory=ReconnectConfig)
    humanize: HumanizeConfig = field(default_factory=HumanizeConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    billing: BillingConfig = field(default_factory=BillingConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    db_path: Path = field(default_factory=lambda: Path("data/chatgate.db"))
    max_upload_bytes: int = 16 * 1024 * 1024
    version: str = "0.1.0"


def _parse_bool(value: str, default: bool) -> bool:
    """Parse a boolean environment variable with explicit default.

    Recognises ``true/1/yes`` and ``false/0/no`` (case-insensitive).
    Returns *default* when the value is empty or unset.
    Logs a warning and returns *default* for unrecognised values.
    """
    if not value:
        return default
    normalised = value.lower()
    if normalised not in _RECOGNISED_BOOL_VALUES:
        logger.warning(
            "Unrecognised boolean value %r, using default %s. "
            "Expected one of: true/1/yes or false/0/no.",
            value,
            default,
        )
        return default
    return normalised in ("1", "true", "yes")


def decode_public_key(value: str) -> bytes:
    """Decode a base64 (standard or urlsafe) Ed25519 public key."""
    padded = value.strip() + "=" * (-len(value.strip()) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.replace("+", "-").replace("/", "_"))
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"AUTH_PUBLIC_KEY is not valid base64: {exc}") from exc
    if len(raw) != 32:
        raise ValueError(f"AUTH_PUBLIC_KEY must decode to 32 bytes, got {len(raw)}")
    return raw


def load_config_from_env() -> ServerConfig:
    public_key = os.environ.get("AUTH_PUBLIC_KEY")
    if not public_key:
        raise ValueError("Missing: AUTH_PUBLIC_KEY")

    bridge_url = os.environ.get("BRIDGE_URL", "http://localhost:3001")
    if not bridge_url.startswith(("http://", "https://")):
        raise ValueError("BRIDGE_URL must be an http(s) URL")

    return ServerConfig(
        auth=AuthConfig(
            public_key=decode_public_key(public_key),
            leeway_seconds=int(os.environ.get("AUTH_LEEWAY_SECONDS", "30")),
        ),
        sessions=SessionConfig(
            auth_dir=Path(os.environ.get("SESSIONS_DIR", "data/sessions")),
            bootstrap_poll_interval=float(os.environ.get("BOOTSTRAP_POLL_INTERVAL", "1.0")),
            bootstrap_max_attempts=int(os.environ.get("BOOTSTRAP_MAX_ATTEMPTS", "15")),
            sweep_interval=float(os.environ.get("SWEEP_INTERVAL", "60")),
            contacts_limit=int(os.environ.get("CONTACTS_LIMIT", "5000")),
            chats_limit=int(os.environ.get("CHATS_LIMIT", "1000")),
            messages_limit=int(os.environ.get("MESSAGES_LIMIT", "1000")),
        ),
        reconnect=ReconnectConfig(
            base_delay=float(os.environ.get("RECONNECT_BASE_DELAY", "2.0")),
            exponent_cap=int(os.environ.get("RECONNECT_EXPONENT_CAP", "5")),
            max_delay=float(os.environ.get("RECONNECT_MAX_DELAY", "30.0")),
            max_attempts=int(os.environ.get("RECONNECT_MAX_ATTEMPTS", "10")),
            restart_delay=float(os.environ.get("RECONNECT_RESTART_DELAY", "1.0")),
        ),
        humanize=HumanizeConfig(
            enabled=_parse_bool(os.environ.get("HUMANIZE_ENABLED", ""), default=True),
            presence_pause=float(os.environ.get("HUMANIZE_PRESENCE_PAUSE", "0.5")),
            typing_delay_per_char=float(os.environ.get("HUMANIZE_TYPING_DELAY_PER_CHAR", "0.05")),
            typing_delay_max=float(os.environ.get("HUMANIZE_TYPING_DELAY_MAX", "3.0")),
        ),
        bridge=BridgeConfig(
            url=bridge_url,
            api_key=os.environ.get("BRIDGE_API_KEY", ""),
            timeout=float(os.environ.get("BRIDGE_TIMEOUT", "30")),
            max_retries=int(os.environ.get("BRIDGE_MAX_RETRIES", "3")),
        ),
        billing=BillingConfig(
            session_cost=int(os.environ.get("SESSION_COST", "0")),
            validation_cost=int(os.environ.get("VALIDATION_COST", "0")),
        ),
        rate_limit=RateLimitConfig(
            requests_per_minute=int(os.environ.get("RATE_LIMIT_REQUESTS_PER_MINUTE", "120")),
        ),
        db_path=Path(os.environ.get("DB_PATH", "data/chatgate.db")),
        max_upload_bytes=int(os.environ.get("MAX_UPLOAD_BYTES", str(16 * 1024 * 1024))),
    )
