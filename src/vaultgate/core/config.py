"""Configuration management for vaultgate."""

import logging
import os

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def get_env(key: str, default: str | None = None) -> str | None:
    """Get environment variable with optional default."""
    return os.getenv(key, default)


# Defaults
DEFAULT_EXECUTABLE = "obsidian"
DEFAULT_REST_URL = "http://127.0.0.1:27123"
DEFAULT_PROCESS_TIMEOUT = 15.0
DEFAULT_HTTP_TIMEOUT = 10.0
DEFAULT_PROBE_TIMEOUT = 5.0
DEFAULT_SAMPLE_SIZE = 100
DEFAULT_TAG_SAMPLE_SIZE = 50

# Environment variable -> RouterConfig field
ENV_FIELDS = {
    "VAULTGATE_TRANSPORT": "transport",
    "VAULTGATE_VAULT": "vault_name",
    "VAULTGATE_VAULT_PATH": "vault_path",
    "VAULTGATE_EXECUTABLE": "executable",
    "VAULTGATE_REST_URL": "rest_url",
    "VAULTGATE_REST_KEY": "rest_key",
    "VAULTGATE_PROCESS_TIMEOUT": "process_timeout",
    "VAULTGATE_HTTP_TIMEOUT": "http_timeout",
    "VAULTGATE_PROBE_TIMEOUT": "probe_timeout",
    "VAULTGATE_SAMPLE_SIZE": "sample_size",
    "VAULTGATE_TAG_SAMPLE_SIZE": "tag_sample_size",
    "VAULTGATE_CASE_SENSITIVE_LINKS": "case_sensitive_links",
}

CONFIG_FILE_ENV = "VAULTGATE_CONFIG_FILE"

# Logging
LOG_LEVEL = get_env("LOG_LEVEL", "INFO")


def setup_logging(level: str | None = None) -> logging.Logger:
    """Configure and return logger."""
    name = (level or LOG_LEVEL or "INFO").upper()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, name, logging.INFO),
    )
    return logging.getLogger("vaultgate")
