"""DigitalOcean provider configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass

from nodeward.core.exceptions import ConfigurationError

DEFAULT_API_URL = "https://api.digitalocean.com/v2"


@dataclass(frozen=True, slots=True)
class DigitalOcean:
    """DigitalOcean provider configuration.

    Example:
        >>> from nodeward.providers.digitalocean import DigitalOcean
        >>> config = DigitalOcean(region="fra1")

    Args:
        region: Region slug for new droplets. Default: nyc3.
        token: API token. Falls back to the DIGITALOCEAN_TOKEN env var.
        ssh_key_fingerprint: SSH key installed on new droplets so the
            configuration playbooks can log in.
        base_url: API root, overridable for tests.
        request_timeout: Per-request timeout in seconds.
    """

    region: str = "nyc3"
    token: str | None = None
    ssh_key_fingerprint: str | None = None
    base_url: str = DEFAULT_API_URL
    request_timeout: float = 30.0

    def resolve_token(self) -> str:
        token = self.token or os.environ.get("DIGITALOCEAN_TOKEN")
        if not token:
            raise ConfigurationError(
                "DigitalOcean API token not provided. "
                "Set DIGITALOCEAN_TOKEN or [cloud].token in nodeward.toml"
            )
        return token
