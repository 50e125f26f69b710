# Configuration management

import tempfile
from functools import lru_cache
from typing import Dict, Mapping, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict  # type: ignore

# Backend-loader option names mapped to settings fields
OPTION_FIELDS: Dict[str, str] = {
    "tardigrade-auth-method": "auth_method",
    "tardigrade-satellite": "satellite",
    "tardigrade-api-key": "api_key",
    "tardigrade-secret": "secret",
    "tardigrade-shared-access": "shared_access",
    "tardigrade-bucket": "bucket",
    "tardigrade-folder": "folder",
}

KNOWN_SATELLITES: Dict[str, str] = {
    "US Central 1": "us-central-1.tardigrade.io:7777",
    "Asia East 1": "asia-east-1.tardigrade.io:7777",
    "Europe West 1": "europe-west-1.tardigrade.io:7777",
}

KNOWN_AUTH_METHODS: Dict[str, str] = {
    "API key": "API key",
    "Access grant": "Access grant",
}

DEFAULT_SATELLITE = KNOWN_SATELLITES["US Central 1"]


class TardigradeSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TARDIGRADE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Access
    auth_method: str = "API key"
    satellite: Optional[str] = DEFAULT_SATELLITE
    api_key: Optional[str] = None
    secret: Optional[str] = None
    shared_access: Optional[str] = None
    temp_dir: str = tempfile.gettempdir()

    # Layout
    bucket: str = "duplicati"
    folder: Optional[str] = None
    cache_bucket: bool = False

    # Self-test
    test_timeout_seconds: float = 10.0

    # Observability
    log_level: str = "INFO"
    log_json: bool = True

    @classmethod
    def from_options(cls, options: Mapping[str, str]) -> "TardigradeSettings":
        """
        Build settings from a backend-loader option dictionary.

        Args:
            options: Hyphenated options such as 'tardigrade-bucket'. Unknown
                keys are ignored so the engine can pass its full option set.

        Returns:
            TardigradeSettings with the recognised options applied
        """
        values = {
            field_name: options[option]
            for option, field_name in OPTION_FIELDS.items()
            if option in options
        }
        return cls(**values)


@lru_cache()
def get_settings() -> TardigradeSettings:
    return TardigradeSettings()
