"""Central Configuration System for Chalamandra.

This module is the single source of truth for application configuration.
Every other module that needs settings imports from here. Remote analysis is
optional and off by default; privacy is the default.

The configuration system supports:
- Multi-source configuration (environment variables > config file > defaults)
- API key lookup (environment > system keyring)
- Escalation thresholds and timeouts for the analysis orchestrator
- Graceful degradation: a missing key or package disables a backend, it never
  aborts analysis

Example:
    >>> from chalamandra.config import get_config
    >>>
    >>> cfg = get_config()
    >>> cfg.privacy.allow_remote  # False by default
    False

Config File Format (YAML):
    ```yaml
    analysis:
      default_mode: quick
      remote_timeout_ms: 3000
      capability_refresh_seconds: 60

    escalation:
      min_confidence: 0.6
      max_risk: 70
      sarcasm_low: 30
      sarcasm_high: 80

    privacy:
      privacy_level: high  # high | standard | low
      allow_remote: false

    remote:
      enabled: true
      model_name: gemini-1.5-flash

    ondevice:
      enabled: false
      base_url: http://localhost:11434
      model: llama3.2

    paths:
      config_dir: ~/.chalamandra
    ```
"""

from __future__ import annotations

import functools
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from chalamandra.core.models import AnalysisMode
from chalamandra.core.privacy import PrivacyLevel, PrivacySettings

try:
    import keyring
    import keyring.errors

    KEYRING_AVAILABLE = True
except ImportError:
    keyring = None  # type: ignore
    KEYRING_AVAILABLE = False


# Configure module logger - never log secrets
logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class ConfigFileError(ConfigError):
    """Exception raised for YAML config file issues."""

    pass


class APIKeyError(ConfigError):
    """Base exception for API key related issues."""

    pass


class APIKeyNotFoundError(APIKeyError):
    """Raised when no API key is found in the environment or keyring."""

    pass


# =============================================================================
# Configuration Models
# =============================================================================


class AnalysisConfig(BaseModel):
    """Orchestrator-wide analysis settings.

    Attributes:
        default_mode: Mode used by the CLI when none is given.
        remote_timeout_ms: Bound for a remote call when the request has none.
        capability_refresh_seconds: Age after which the capability snapshot
            is re-detected.
        history_limit: Maximum results kept in the history file.
        cache_enabled: Answer repeated requests from the in-memory cache.
        cache_size: Maximum cached results.
        cache_ttl_seconds: Age after which a cached result is recomputed.
    """

    default_mode: AnalysisMode = Field(default=AnalysisMode.QUICK)
    remote_timeout_ms: int = Field(default=3000, gt=0, le=120_000)
    capability_refresh_seconds: float = Field(default=60.0, gt=0)
    history_limit: int = Field(default=50, ge=1, le=10_000)
    cache_enabled: bool = True
    cache_size: int = Field(default=128, ge=1, le=10_000)
    cache_ttl_seconds: float = Field(default=300.0, gt=0)


class EscalationThresholds(BaseModel):
    """Thresholds that send a local result on to remote analysis.

    Escalation fires when confidence is below ``min_confidence``, risk is
    above ``max_risk`` or sarcasm lies strictly between ``sarcasm_low`` and
    ``sarcasm_high``.
    """

    min_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    max_risk: int = Field(default=70, ge=0, le=100)
    sarcasm_low: int = Field(default=30, ge=0, le=100)
    sarcasm_high: int = Field(default=80, ge=0, le=100)

    @model_validator(mode="after")
    def check_sarcasm_band(self) -> "EscalationThresholds":
        if self.sarcasm_low > self.sarcasm_high:
            raise ValueError("sarcasm_low must not exceed sarcasm_high")
        return self


class PrivacyConfig(BaseModel):
    """Privacy defaults. Remote enhancement requires an explicit opt-in.

    Attributes:
        privacy_level: HIGH keeps everything local even with opt-in.
        allow_remote: User opt-in to remote enhancement.
    """

    privacy_level: PrivacyLevel = Field(default=PrivacyLevel.HIGH)
    allow_remote: bool = Field(default=False)

    def to_settings(self) -> PrivacySettings:
        """Build the per-request settings object."""
        return PrivacySettings(privacy_level=self.privacy_level, allow_remote=self.allow_remote)


class RemoteConfig(BaseModel):
    """Gemini remote-enhanced backend settings.

    Attributes:
        enabled: Whether the remote backend may be offered at all.
        model_name: Gemini model identifier.
        temperature: Sampling temperature.
        max_output_tokens: Maximum tokens in model response.
        probe_host: Hostname resolved to decide whether the network is up.
        probe_network: Disable to treat the network as unavailable.
    """

    enabled: bool = Field(default=True)
    model_name: str = Field(default="gemini-1.5-flash")
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=1024, ge=1, le=32_768)
    probe_host: str = Field(default="generativelanguage.googleapis.com")
    probe_network: bool = Field(default=True)


class OnDeviceConfig(BaseModel):
    """Local generative model (Ollama) settings."""

    enabled: bool = Field(default=False)
    base_url: str = Field(default="http://localhost:11434")
    model: str = Field(default="llama3.2")
    timeout_seconds: float = Field(default=10.0, gt=0)


class PathsConfig(BaseModel):
    """File system paths.

    Attributes:
        config_dir: Base directory. Default ~/.chalamandra
        history_file: Result history. Default: config_dir/history.json
        log_dir: Log files. Default: config_dir/logs
    """

    config_dir: Path = Field(default_factory=lambda: Path.home() / ".chalamandra")
    history_file: Path | None = Field(default=None)
    log_dir: Path | None = Field(default=None)

    @field_validator("config_dir", "history_file", "log_dir", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Any:
        """Expand ~ in paths."""
        if isinstance(v, (str, Path)):
            return Path(v).expanduser()
        return v

    @model_validator(mode="after")
    def resolve_defaults(self) -> "PathsConfig":
        """Resolve None defaults relative to config_dir."""
        if self.history_file is None:
            self.history_file = self.config_dir / "history.json"
        if self.log_dir is None:
            self.log_dir = self.config_dir / "logs"
        return self


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Configuration priority (highest wins):
    1. Environment variables (CHALAMANDRA_*, nested with __)
    2. Config file (YAML)
    3. In-code defaults

    Example:
        CHALAMANDRA_PRIVACY__ALLOW_REMOTE=true enables remote opt-in.
    """

    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    escalation: EscalationThresholds = Field(default_factory=EscalationThresholds)
    privacy: PrivacyConfig = Field(default_factory=PrivacyConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    ondevice: OnDeviceConfig = Field(default_factory=OnDeviceConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    debug: bool = Field(default=False, description="Enable debug logging.")

    model_config = {
        "env_prefix": "CHALAMANDRA_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment first so it overrides values read from the YAML file.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    def has_api_key(self) -> bool:
        """Check whether a Gemini key is configured, without raising."""
        return APIKeyManager().get_key() is not None


# =============================================================================
# API Key Management
# =============================================================================


class APIKeyManager:
    """Looks up the Gemini API key.

    Sources, in priority order:
    1. Environment variables GEMINI_API_KEY, CHALAMANDRA_API_KEY
    2. System keyring
    """

    KEYRING_SERVICE = "chalamandra"
    KEYRING_USERNAME = "gemini"
    ENV_VAR_NAMES = ("GEMINI_API_KEY", "CHALAMANDRA_API_KEY")

    def get_key(self) -> SecretStr | None:
        """Return the key wrapped in SecretStr, or None if not found."""
        for name in self.ENV_VAR_NAMES:
            value = os.environ.get(name, "").strip()
            if value:
                logger.debug(f"API key loaded from {name}")
                return SecretStr(value)

        key = self._read_from_keyring()
        if key:
            logger.debug("API key loaded from system keyring")
            return SecretStr(key.strip())

        logger.debug("No API key found in any source")
        return None

    def store_key(self, key: str) -> None:
        """Store the key in the system keyring.

        Raises:
            ConfigError: If keyring is unavailable or the write fails.
        """
        if not KEYRING_AVAILABLE:
            raise ConfigError("Keyring package not available. Install with: pip install keyring")
        if not key.strip() or any(c.isspace() for c in key.strip()):
            raise APIKeyError("API key must be a non-empty string without whitespace")
        try:
            keyring.set_password(self.KEYRING_SERVICE, self.KEYRING_USERNAME, key.strip())
        except keyring.errors.KeyringError as e:
            raise ConfigError(f"Failed to store key in keyring: {type(e).__name__}") from e
        logger.info("API key stored in system keyring")

    def _read_from_keyring(self) -> str | None:
        if not KEYRING_AVAILABLE:
            return None
        try:
            return keyring.get_password(self.KEYRING_SERVICE, self.KEYRING_USERNAME)
        except Exception as e:
            # Keyring backends vary by platform; absence is not an error here.
            logger.debug(f"Keyring access failed: {type(e).__name__}")
            return None


# =============================================================================
# Loading
# =============================================================================


def _read_yaml(config_file: Path) -> dict[str, Any]:
    try:
        content = config_file.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigFileError(f"Cannot read config file {config_file}: {type(e).__name__}") from e
    try:
        loaded = yaml.safe_load(content) if content.strip() else None
    except yaml.YAMLError as e:
        raise ConfigFileError(f"Malformed YAML in {config_file}: {e}") from e
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigFileError(f"Config file {config_file} must contain a mapping")
    return loaded


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from file, environment, and defaults.

    If no config file is found, uses defaults only (not an error).
    If the config file is malformed, logs a warning and uses defaults.

    Args:
        path: Optional path to config file. If None, searches default locations.

    Returns:
        Fully-populated AppConfig instance.
    """
    search_paths = [
        path,
        Path("./chalamandra.yaml"),
        Path("./chalamandra.yml"),
        Path.home() / ".chalamandra" / "config.yaml",
    ]

    config_data: dict[str, Any] = {}
    for search_path in search_paths:
        if search_path is not None and search_path.exists():
            try:
                config_data = _read_yaml(search_path)
                logger.debug(f"Loaded config from {search_path}")
            except ConfigFileError as e:
                logger.warning(f"{e}. Using defaults.")
            break

    try:
        return AppConfig(**config_data)
    except ValidationError as e:
        logger.warning(
            f"Error parsing config values: {e.error_count()} invalid field(s). Using defaults."
        )
        return AppConfig()


@functools.lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Get the cached configuration singleton."""
    return load_config()


def get_api_key() -> SecretStr:
    """Get the Gemini API key.

    Raises:
        APIKeyNotFoundError: If no API key is configured in any source.
    """
    key = APIKeyManager().get_key()
    if key is None:
        raise APIKeyNotFoundError(
            "No API key found. Set GEMINI_API_KEY or CHALAMANDRA_API_KEY, "
            "or run 'chalamandra config set-key'."
        )
    return key


def reset_config() -> None:
    """Clear the configuration cache for testing."""
    get_config.cache_clear()
