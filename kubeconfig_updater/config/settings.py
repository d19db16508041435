"""Application settings loaded from the environment."""

from typing import Any

from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kubeconfig_updater.auth.policy import ExpirationSource
from kubeconfig_updater.core.logging import LOG_FORMATS
from kubeconfig_updater.exceptions import ConfigurationError
from kubeconfig_updater.rancher.models import AuthType, RancherClientConfig


__all__ = ["LoggingSettings", "Settings", "ConfigurationError"]

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    format: str = Field(
        default="pipe",
        description="Logging output format: 'pipe', 'json' or 'rich'",
    )

    @field_validator("level", mode="before")
    @classmethod
    def validate_level(cls, v: Any) -> str:
        level = str(v).upper()
        if level not in LOG_LEVELS:
            raise ValueError(
                f"Invalid log level '{v}', expected one of {', '.join(LOG_LEVELS)}"
            )
        return level

    @field_validator("format", mode="before")
    @classmethod
    def validate_format(cls, v: Any) -> str:
        log_format = str(v).lower()
        if log_format not in LOG_FORMATS:
            raise ValueError(
                f"Invalid log format '{v}', expected one of {', '.join(LOG_FORMATS)}"
            )
        return log_format


class Settings(BaseSettings):
    """
    Configuration settings for the kubeconfig updater.

    Values are read from environment variables and a ``.env`` file.
    Environment variables take precedence over the ``.env`` file, and
    command line options take precedence over both.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    rancher_url: str = Field(default="", description="Rancher server URL")

    rancher_username: str = Field(default="", description="Rancher username")

    rancher_password: SecretStr = Field(
        default=SecretStr(""), description="Rancher password"
    )

    rancher_auth_type: AuthType = Field(
        default=AuthType.LOCAL,
        description="Rancher authentication provider: 'local' or 'ldap'",
    )

    rancher_insecure_skip_tls_verify: bool = Field(
        default=False,
        description="Skip TLS certificate verification (insecure, use only for testing)",
    )

    rancher_timeout: float = Field(
        default=30.0, gt=0, description="Rancher API request timeout in seconds"
    )

    token_threshold_days: int = Field(
        default=30, ge=0, description="Expiration threshold in days"
    )

    force_refresh: bool = Field(
        default=False, description="Bypass expiration checks and force regeneration"
    )

    dry_run: bool = Field(
        default=False, description="Preview changes without modifying kubeconfig"
    )

    with_directly: bool = Field(
        default=False,
        description="Include direct cluster contexts from Rancher kubeconfigs",
    )

    auto_create: bool = Field(
        default=False,
        description="Create kubeconfig entries for clusters missing from the file",
    )

    cluster_filter: str = Field(
        default="",
        description="Comma-separated list of cluster names or IDs to update",
    )

    kubeconfig_path: str | None = Field(
        default=None,
        description="Kubeconfig path (default: KUBECONFIG or ~/.kube/config)",
    )

    token_expiration_source: ExpirationSource = Field(
        default=ExpirationSource.CLAIMS,
        description="Where token expiration is read from: 'claims' or 'rancher'",
    )

    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration",
    )

    @field_validator("rancher_auth_type", mode="before")
    @classmethod
    def normalize_auth_type(cls, v: Any) -> Any:
        if v is None or v == "":
            return AuthType.LOCAL
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("token_expiration_source", mode="before")
    @classmethod
    def normalize_expiration_source(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @classmethod
    def from_env(
        cls,
        log_level: str | None = None,
        log_format: str | None = None,
        **overrides: Any,
    ) -> "Settings":
        """Create settings from the environment with command line overrides.

        Args:
            log_level: Logging level override
            log_format: Logging format override
            **overrides: Field overrides, None values are ignored

        Raises:
            ConfigurationError: If a value is invalid
        """
        values = {key: value for key, value in overrides.items() if value is not None}
        try:
            settings = cls(**values)
            if log_level is not None or log_format is not None:
                settings.logging = LoggingSettings(
                    level=log_level or settings.logging.level,
                    format=log_format or settings.logging.format,
                )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
        return settings

    def missing_rancher_settings(self) -> list[str]:
        """List the Rancher connection settings that are not set."""
        missing = []
        if not self.rancher_url:
            missing.append("RANCHER_URL")
        if not self.rancher_username:
            missing.append("RANCHER_USERNAME")
        if not self.rancher_password.get_secret_value():
            missing.append("RANCHER_PASSWORD")
        return missing

    def rancher_client_config(self) -> RancherClientConfig:
        """Build the Rancher client configuration.

        Raises:
            ConfigurationError: If the Rancher URL is missing
        """
        if not self.rancher_url:
            raise ConfigurationError("RANCHER_URL is not set")
        return RancherClientConfig(
            base_url=self.rancher_url,
            username=self.rancher_username,
            password=self.rancher_password,
            auth_type=self.rancher_auth_type,
            insecure_skip_tls_verify=self.rancher_insecure_skip_tls_verify,
            timeout=self.rancher_timeout,
        )

    def model_dump_safe(self) -> dict[str, Any]:
        """
        Dump model data with sensitive information masked.

        Returns:
            dict: Configuration with sensitive data masked
        """
        return self.model_dump(mode="json")
