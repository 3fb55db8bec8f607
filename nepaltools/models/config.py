"""
Pydantic model for application configuration.
Provides validation for the backend selection and data locations.
"""

from enum import Enum

from pydantic import BaseModel, Field, field_validator


class BackendKind(str, Enum):
    """The concrete key-value backends the store can run on."""

    SQLITE = "sqlite"
    JSON = "json"
    MEMORY = "memory"


class StoreConfig(BaseModel):
    """A validated configuration model for the application."""

    backend: BackendKind = BackendKind.SQLITE
    data_dir: str = ""
    json_logs: bool = False
    log_dir: str = ""

    # Internal fields not loaded from INI file
    config_path: str = Field(..., repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("backend", mode="before")
    @classmethod
    def normalize_backend(cls, v):
        """Accepts backend names case-insensitively."""
        if isinstance(v, str):
            v = v.strip().lower()
            if v not in {kind.value for kind in BackendKind}:
                raise ValueError(
                    "Backend must be one of: "
                    + ", ".join(kind.value for kind in BackendKind)
                    + "."
                )
        return v

    @field_validator("data_dir", "log_dir")
    @classmethod
    def validate_dir(cls, v: str) -> str:
        if "\x00" in v:
            raise ValueError("Directory path contains a NUL character.")
        return v

    @property
    def resolved_data_dir(self) -> str:
        """The data directory, defaulting to the configuration directory."""
        return self.data_dir or self.config_path

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
