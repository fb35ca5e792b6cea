"""Config resolution shared by the CLI commands."""

from pathlib import Path

from resourcegate.config import GatewayConfig


def load_config() -> GatewayConfig:
    """GatewayConfig from the environment, relative to the project root."""
    cwd = Path.cwd()
    base_path = cwd.parent if cwd.name == "backend" else cwd
    return GatewayConfig.from_env(base_path)
