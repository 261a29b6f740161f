"""
Configuration for the CouchDB SDK.

Uses pydantic-settings for environment variable loading.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class ClientSettings(BaseSettings):
    """Client configuration loaded from environment."""

    # Server connection
    host: str = Field(default="localhost", description="CouchDB server host")
    port: int = Field(default=5984, description="CouchDB server port")
    scheme: str = Field(default="http", description="URL scheme (http or https)")

    # Basic credentials, used when both are set
    username: str | None = Field(default=None, description="Basic auth user name")
    password: str | None = Field(default=None, description="Basic auth password")

    # Request timeout; 0 disables it
    timeout: float = Field(default=0.0, description="Default request timeout seconds")

    model_config = {"env_prefix": "COUCH_"}

    @property
    def base_url(self) -> str:
        """Full server URL."""
        return f"{self.scheme}://{self.host}:{self.port}"
