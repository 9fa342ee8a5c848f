"""Engine configuration.

Settings are read from keyword arguments first, then from `KEEL_DI_*`
environment variables, then fall back to the defaults below.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Behavioral switches of a container.

    Attributes:
        allow_circular_references: Expose early references of singletons in
            creation so mutually dependent singletons can be wired.
        allow_raw_injection_despite_wrapping: Accept a component being wrapped
            after others already captured its raw instance.
        cache_metadata: Cache merged definitions by name.
        allow_definition_overriding: Allow registering a name twice.
        enforce_init_method: Fail when a declared init method does not exist.
        enforce_destroy_method: Fail when a declared destroy method does not exist.
    """

    model_config = SettingsConfigDict(env_prefix="KEEL_DI_", extra="ignore")

    allow_circular_references: bool = Field(default=True)
    allow_raw_injection_despite_wrapping: bool = Field(default=False)
    cache_metadata: bool = Field(default=True)
    allow_definition_overriding: bool = Field(default=True)
    enforce_init_method: bool = Field(default=True)
    enforce_destroy_method: bool = Field(default=True)
