"""Configuration for the HTTP installer."""

from pydantic import BaseModel, SecretStr


class HttpInstallerConfig(BaseModel):
    """Configuration for the HTTP installer.

    `api_base_url` points at the install endpoint exposed by the target
    application, usually below the site URL.
    """

    api_base_url: str
    api_token: SecretStr | None = None
    timeout: float = 600.0
