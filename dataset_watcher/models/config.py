"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, Field, field_validator

DEFAULT_BASE_URL = "https://www.justice.gov/epstein/files/"
DEFAULT_DOWNLOAD_DIR = "~/Downloads"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0"
)


class WatcherConfig(BaseModel):
    """A validated configuration model for the application."""

    # Remote server
    base_url: str = DEFAULT_BASE_URL
    user_agent: str = DEFAULT_USER_AGENT
    probe_timeout: float = 15.0

    # Download Settings
    download_dir: str = DEFAULT_DOWNLOAD_DIR
    download_timeout: float = 0.0

    # Sequence defaults
    default_index: int = 9

    # Output Options
    notifications: bool = True
    event_log: bool = False

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Requires an http(s) URL and normalizes it to end with a slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Base URL must start with http:// or https://.")
        if not v.endswith("/"):
            v += "/"
        return v

    @field_validator("user_agent", "download_dir")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("Value cannot be empty.")
        return v

    @field_validator("probe_timeout")
    @classmethod
    def validate_probe_timeout(cls, v: float) -> float:
        """Keeps a single probe attempt bounded."""
        if v < 1 or v > 300:
            raise ValueError("Probe timeout must be between 1 and 300 seconds.")
        return v

    @field_validator("download_timeout")
    @classmethod
    def validate_download_timeout(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Download timeout cannot be negative (0 disables it).")
        return v

    @field_validator("default_index")
    @classmethod
    def validate_default_index(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Default index must be 1 or greater.")
        return v

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
