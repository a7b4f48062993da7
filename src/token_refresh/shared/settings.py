from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_HEADER_NAME = "Authorization"
DEFAULT_HEADER_SCHEME = "Bearer "
DEFAULT_RETRY_FLAG_KEY = "token_refresh_retry"

# Request extensions read by httpx and httpcore transports.
RESERVED_EXTENSION_KEYS = frozenset({"timeout", "trace", "sni_hostname", "target"})


class TokenClientSettings(BaseSettings):
    """Settings for clients created by create_token_client.

    Values can be supplied through TOKEN_REFRESH_* environment variables.
    """

    model_config = SettingsConfigDict(env_prefix="TOKEN_REFRESH_")

    base_url: str = ""
    header_name: str = Field(
        DEFAULT_HEADER_NAME,
        description="Request header carrying the access token. Empty disables injection.",
    )
    header_scheme: str = Field(
        DEFAULT_HEADER_SCHEME,
        description="Prefix written before the token value, may be empty.",
    )
    retry_flag_key: str = Field(
        DEFAULT_RETRY_FLAG_KEY,
        min_length=1,
        description="Request extension key holding the per-request retry context.",
    )
    inject_token_on_request: bool = True
    raise_for_status: bool = Field(
        True,
        description="Raise httpx.HTTPStatusError for error responses the client gives up on.",
    )
    timeout: float = 5.0
    refresh_timeout: float | None = Field(
        None,
        description="Timeout for the refresh call, defaults to timeout.",
    )

    @field_validator("retry_flag_key")
    @classmethod
    def validate_retry_flag_key(cls, value: str) -> str:
        if value in RESERVED_EXTENSION_KEYS:
            raise ValueError(f"retry_flag_key {value!r} is a request extension used by httpx")
        return value
