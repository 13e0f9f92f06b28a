"""Load SMTP endpoint settings from config.ini with environment fallbacks."""

from __future__ import annotations

import configparser
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from .logger import get_logger
from .models import SMTPEndpoint

logger = get_logger("AsyncMailSender.config")

ENV_PREFIX = "AMS_SMTP_"

# option name -> (environment variable suffix, kind)
OPTIONS = {
    "host": ("HOST", "str"),
    "port": ("PORT", "int"),
    "user": ("USER", "str"),
    "password": ("PASSWORD", "str"),
    "start_tls": ("START_TLS", "bool"),
    "insecure": ("INSECURE", "bool"),
    "auth": ("AUTH", "str"),
    "timeout": ("TIMEOUT", "float"),
}

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_bool(option: str, value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for '{option}': {value!r}")


class EndpointConfigLoader:
    """Build an :class:`SMTPEndpoint` from an INI section and the environment.

    Expected format in config.ini:
    ```ini
    [smtp]
    host = smtp.example.com
    port = 587
    user = mailer@example.com
    password = secret
    start_tls = true
    insecure = false
    auth = plain
    timeout = 30
    ```

    Values in the file win over ``AMS_SMTP_*`` environment variables, which
    are only used as fallbacks for missing options.
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        section: str = "smtp",
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.config_path = config_path
        self.section = section
        self.environ = os.environ if environ is None else environ
        self.config = configparser.ConfigParser()

    def load_config(self) -> None:
        """Read the configuration file, when one was given."""
        if not self.config_path:
            return
        if not Path(self.config_path).exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")
        self.config.read(self.config_path)

    def _get(self, option: str) -> Optional[str]:
        if self.config.has_option(self.section, option):
            return self.config.get(self.section, option)
        env_suffix, _ = OPTIONS[option]
        return self.environ.get(ENV_PREFIX + env_suffix)

    def parse_settings(self) -> Dict[str, Any]:
        """Return the raw endpoint settings, converted to their Python types."""
        if self.config.sections() and not self.config.has_section(self.section):
            logger.info("No [%s] section found in config file", self.section)

        settings: Dict[str, Any] = {}
        for option, (_, kind) in OPTIONS.items():
            value = self._get(option)
            if value is None or value.strip() == "":
                continue
            value = value.strip()
            try:
                if kind == "int":
                    settings[option] = int(value)
                elif kind == "float":
                    settings[option] = float(value)
                elif kind == "bool":
                    settings[option] = _parse_bool(option, value)
                else:
                    settings[option] = value
            except ValueError as e:
                logger.error("Invalid value for %s: %s", option, e)
                raise ValueError(f"Invalid value for '{option}': {value!r}") from e
        return settings

    def build_endpoint(self, **overrides: Any) -> SMTPEndpoint:
        """Return the endpoint; non-``None`` ``overrides`` replace loaded values."""
        settings = self.parse_settings()
        settings.update({key: value for key, value in overrides.items() if value is not None})
        try:
            endpoint = SMTPEndpoint(**settings)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise ValueError(f"Invalid SMTP configuration ({fields}): {e}") from e
        logger.debug("Loaded SMTP endpoint %s (auth=%s)", endpoint.address, endpoint.auth.value)
        return endpoint


def load_endpoint_from_config(config_path: Optional[str] = None, **overrides: Any) -> SMTPEndpoint:
    """Convenience function to load an endpoint from config file and environment."""
    loader = EndpointConfigLoader(config_path)
    loader.load_config()
    return loader.build_endpoint(**overrides)
