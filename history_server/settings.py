"""
Initializes the Dynaconf settings object for the history server.
This module is the single source of truth for all configuration.
"""

from pathlib import Path
from typing import Optional

from dynaconf import Dynaconf, ValidationError, Validator

from .application.exceptions import ConfigurationError

PROJECT_ROOT = Path(__file__).parent.parent

_VALIDATORS = [
    Validator("history.archive_dirs", default=""),
    Validator("history.delimiter", default=","),
    Validator("history.refresh_interval_ms", default=10000, gt=0),
    Validator("history.web_dir", default=""),
    Validator("web.address", default="0.0.0.0"),
    Validator("web.port", default=8082, gte=0),
    Validator("web.refresh_interval_ms", default=10000, gt=0),
    Validator("web.ssl_enabled", default=False),
    Validator("web.ssl_certfile", default=""),
    Validator("web.ssl_keyfile", default=""),
    Validator("http.timeout", default=30, gt=0),
    Validator("http.token", default=""),
    Validator("logging.level", default="INFO"),
]


def load_settings(extra_file: Optional[str] = None) -> Dynaconf:
    """
    Loads and validates the settings.

    Values come from `config/settings.toml`, `config/.secrets.toml`, the
    optional `extra_file` and `HISTORY_SERVER_*` environment variables, in
    increasing order of precedence.

    Raises:
        ConfigurationError: If a setting fails validation.
    """
    settings_files = ["config/settings.toml"]
    if extra_file:
        settings_files.append(str(extra_file))

    settings = Dynaconf(
        root_path=PROJECT_ROOT,
        settings_files=settings_files,
        secrets=["config/.secrets.toml"],
        envvar_prefix="HISTORY_SERVER",
        merge_enabled=True,
        load_dotenv=False,
        environments=False,
        validators=_VALIDATORS,
    )

    try:
        settings.validators.validate()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    return settings
