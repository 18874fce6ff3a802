"""Configuration file management for the CLI."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
)

from chatgate.server.auth import public_key_to_base64

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
DEFAULT_BRIDGE_URL = "http://localhost:3001"


@dataclass
class GatewayConfig:
    """Gateway settings loaded from the config file."""

    bridge_url: str
    host: str
    port: int
    sessions_dir: Path
    db_path: Path
    signing_key: Ed25519PrivateKey

    @property
    def public_key_base64(self) -> str:
        return public_key_to_base64(self.signing_key.public_key())


class ConfigError(Exception):
    """Configuration file error."""


class ConfigManager:
    """Manages gateway configuration in ~/.chatgate/config.yaml.

    The signing key in ``signing.key`` issues operator bearer tokens;
    the server verifies them with its public half.
    """

    DEFAULT_DIR = Path.home() / ".chatgate"
    CONFIG_FILE = "config.yaml"
    KEY_FILE = "signing.key"
    DB_FILE = "chatgate.db"
    SESSIONS_DIR = "sessions"

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        self._config_dir = config_dir or self.DEFAULT_DIR
        self._config_path = self._config_dir / self.CONFIG_FILE
        self._key_path = self._config_dir / self.KEY_FILE

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    @property
    def config_path(self) -> Path:
        return self._config_path

    def exists(self) -> bool:
        return self._config_path.exists() and self._key_path.exists()

    def load(self) -> GatewayConfig:
        """Load configuration from file. Raises ConfigError if not found."""
        if not self._config_path.exists():
            raise ConfigError(
                f"Config not found at {self._config_path}. Run 'chatgate init' first."
            )
        if not self._key_path.exists():
            raise ConfigError(
                f"Key file not found at {self._key_path}. Run 'chatgate init' first."
            )

        with open(self._config_path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid config file: {e}") from e

        if not isinstance(data, dict) or "bridge_url" not in data:
            raise ConfigError("Invalid config: missing bridge_url")

        with open(self._key_path, "rb") as f:
            key_bytes = f.read()
        try:
            signing_key = Ed25519PrivateKey.from_private_bytes(key_bytes)
        except ValueError as e:
            raise ConfigError(f"Invalid key file: {e}") from e

        try:
            port = int(data.get("port", DEFAULT_PORT))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid port: {data.get('port')!r}") from e

        return GatewayConfig(
            bridge_url=data["bridge_url"],
            host=data.get("host", DEFAULT_HOST),
            port=port,
            sessions_dir=Path(data.get("sessions_dir") or self._config_dir / self.SESSIONS_DIR),
            db_path=Path(data.get("db_path") or self._config_dir / self.DB_FILE),
            signing_key=signing_key,
        )

    def save(
        self,
        bridge_url: str,
        signing_key: Ed25519PrivateKey,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
    ) -> None:
        """Write the config file and the signing key (mode 600)."""
        self._config_dir.mkdir(parents=True, exist_ok=True)
        config_data = {
            "bridge_url": bridge_url,
            "host": host,
            "port": port,
            "sessions_dir": str(self._config_dir / self.SESSIONS_DIR),
            "db_path": str(self._config_dir / self.DB_FILE),
        }
        with open(self._config_path, "w") as f:
            yaml.safe_dump(config_data, f, default_flow_style=False)

        key_bytes = signing_key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())
        with open(self._key_path, "wb") as f:
            f.write(key_bytes)
        self._key_path.chmod(0o600)
