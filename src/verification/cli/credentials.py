"""
Configuration and credential resolution for CLI commands.

Configuration comes from the YAML file and environment; with --use-vault
the engine and sink credentials are replaced by the ones stored in Vault.
"""

import argparse
import logging

from utils.vault_client import VaultClient

from ..config import ApplicationConfig, load_config
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


def apply_vault_credentials(config: ApplicationConfig, vault_client: VaultClient) -> None:
    """Overwrite engine and sink credentials with the Vault secrets."""
    engine = vault_client.get_database_credentials("engine")
    config.engine.username = engine["username"]
    config.engine.password = engine["password"]
    if engine.get("connection_string"):
        config.engine.connection_string = engine["connection_string"]

    sink = vault_client.get_database_credentials("sink")
    config.sink.host = sink["host"]
    config.sink.port = int(sink.get("port", 5432))
    config.sink.database = sink["database"]
    config.sink.user = sink["username"]
    config.sink.password = sink["password"]


def resolve_config(args: argparse.Namespace) -> ApplicationConfig:
    """
    Load configuration for a command.

    Raises:
        ConfigurationError: If configuration or Vault lookup fails
    """
    config = load_config(getattr(args, "config", None))

    if getattr(args, "use_vault", False):
        try:
            apply_vault_credentials(config, VaultClient())
        except Exception as e:
            raise ConfigurationError(f"Failed to fetch credentials from Vault: {e}") from e
        logger.info("Successfully fetched credentials from Vault")

    return config
