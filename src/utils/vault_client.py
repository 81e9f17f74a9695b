"""
HashiCorp Vault client for engine and sink credentials

Reads secrets from the KV v2 secrets engine over its HTTP API.
"""

import logging
import os
import re
from typing import Any

import requests

logger = logging.getLogger(__name__)

SECRET_PATH_PATTERN = re.compile(r"^[a-zA-Z0-9/_-]+$")

# Credential kinds understood by get_database_credentials and their mandatory keys
REQUIRED_FIELDS = {
    "engine": ("username", "password"),
    "sink": ("host", "database", "username", "password"),
}


class VaultClient:
    """
    Minimal Vault KV v2 client

    Secrets live at ``<mount>/verification/<kind>`` by default, where kind
    is ``engine`` (the SQL engine behind ODBC) or ``sink`` (the PostgreSQL
    result store).
    """

    def __init__(
        self,
        vault_addr: str | None = None,
        vault_token: str | None = None,
        namespace: str | None = None,
        mount: str = "secret",
        timeout: float = 10.0,
    ):
        """
        Args:
            vault_addr: Vault server address (default: VAULT_ADDR env var)
            vault_token: Vault token (default: VAULT_TOKEN env var)
            namespace: Vault Enterprise namespace
            mount: KV v2 mount point
            timeout: HTTP timeout in seconds

        Raises:
            ValueError: If the address or token cannot be resolved
        """
        vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        vault_token = vault_token or os.getenv("VAULT_TOKEN")

        if not vault_addr:
            raise ValueError(
                "Vault address not provided. Set VAULT_ADDR or pass vault_addr."
            )
        if not vault_token:
            raise ValueError(
                "Vault token not provided. Set VAULT_TOKEN or pass vault_token."
            )

        self.vault_addr = vault_addr.rstrip("/")
        self.mount = mount.strip("/")
        self.timeout = timeout

        self.headers = {
            "X-Vault-Token": vault_token,
            "Content-Type": "application/json",
        }
        if namespace:
            self.headers["X-Vault-Namespace"] = namespace

        logger.info(f"Initialized Vault client for {self.vault_addr}")

    def _data_url(self, secret_path: str) -> str:
        if not secret_path or ".." in secret_path or secret_path.startswith("/"):
            raise ValueError(f"Invalid secret_path: {secret_path!r}")
        if not SECRET_PATH_PATTERN.match(secret_path):
            raise ValueError(
                f"Invalid secret_path: {secret_path!r}. "
                "Only alphanumeric characters, slashes, underscores, and hyphens are allowed."
            )
        return f"{self.vault_addr}/v1/{self.mount}/data/{secret_path}"

    def get_secret(self, secret_path: str) -> dict[str, Any]:
        """
        Fetch a secret's key/value data.

        Args:
            secret_path: Path below the mount (e.g. "verification/engine")

        Raises:
            ValueError: If the path is invalid, missing or empty
            requests.RequestException: If the Vault request fails
        """
        url = self._data_url(secret_path)
        logger.debug(f"Fetching secret from: {url}")

        response = requests.get(url, headers=self.headers, timeout=self.timeout)

        if response.status_code == 404:
            raise ValueError(f"Secret not found at path: {secret_path}")

        response.raise_for_status()

        secret_data = response.json().get("data", {}).get("data", {})
        if not secret_data:
            raise ValueError(f"No data found in secret at path: {secret_path}")

        return secret_data

    def get_database_credentials(
        self,
        kind: str,
        secret_path: str | None = None,
    ) -> dict[str, Any]:
        """
        Fetch credentials for the engine or the sink.

        Args:
            kind: "engine" or "sink"
            secret_path: Override for the default "verification/<kind>" path

        Returns:
            Credential dictionary; sink credentials get port 5432 if unset

        Raises:
            ValueError: If kind is unknown or required fields are missing
        """
        if kind not in REQUIRED_FIELDS:
            raise ValueError(
                f"Unsupported credential kind: {kind!r}. "
                f"Must be one of {', '.join(sorted(REQUIRED_FIELDS))}."
            )

        secret_data = self.get_secret(secret_path or f"verification/{kind}")

        missing = [field for field in REQUIRED_FIELDS[kind] if field not in secret_data]
        if missing:
            raise ValueError(
                f"Missing required fields in {kind} secret: {', '.join(missing)}"
            )

        if kind == "sink":
            secret_data.setdefault("port", 5432)

        logger.info(f"Fetched {kind} credentials from Vault")
        return secret_data

    def health_check(self) -> bool:
        """
        Check whether Vault is reachable and unsealed.

        200 active, 429 standby, 472/473 replication and performance standbys.
        """
        url = f"{self.vault_addr}/v1/sys/health"

        try:
            response = requests.get(url, timeout=5)
            return response.status_code in (200, 429, 472, 473)
        except requests.RequestException as e:
            logger.error(f"Vault health check failed: {e}")
            return False
