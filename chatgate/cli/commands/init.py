"""Initialize gateway configuration and signing key."""

import typer
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from rich.console import Console

from chatgate.cli.output import format_error, format_success, json_output
from chatgate.cli.utils import ConfigManager
from chatgate.server.auth import public_key_to_base64

console = Console()


def init_command(bridge_url: str, host: str, port: int, force: bool, json_flag: bool) -> None:
    """Create ~/.chatgate/config.yaml and an Ed25519 signing key.

    The signing key file is chmod 600. Its public half is what the
    server uses to verify bearer tokens.
    """
    if not bridge_url.startswith(("http://", "https://")):
        format_error(console, f"Invalid bridge URL: {bridge_url}", hint="Use an http(s):// URL")
        raise typer.Exit(code=2)
    if not 0 < port < 65536:
        format_error(console, f"Invalid port: {port}")
        raise typer.Exit(code=2)

    config = ConfigManager()
    if config.exists() and not force:
        format_error(
            console,
            f"Configuration already exists at {config.config_path}",
            hint="Use --force to overwrite existing configuration",
        )
        raise typer.Exit(code=1)

    signing_key = Ed25519PrivateKey.generate()
    config.save(bridge_url, signing_key, host=host, port=port)
    public_key = public_key_to_base64(signing_key.public_key())

    if json_flag:
        json_output(console, {
            "status": "initialized",
            "bridge_url": bridge_url,
            "host": host,
            "port": port,
            "public_key": public_key,
            "config_path": str(config.config_path),
        })
        return
    format_success(console, "Gateway initialized")
    console.print(f"[cyan]Bridge:[/cyan]      {bridge_url}")
    console.print(f"[cyan]Listen:[/cyan]      {host}:{port}")
    console.print(f"[cyan]Public Key:[/cyan]  {public_key}")
    console.print(f"[cyan]Config:[/cyan]      {config.config_path}")
