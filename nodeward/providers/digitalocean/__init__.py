"""DigitalOcean provider for Nodeward.

Example:
    from nodeward.providers.digitalocean import DigitalOcean, DigitalOceanClient

    async with DigitalOceanClient(DigitalOcean(region="fra1")) as cloud:
        ...
"""

from .client import DigitalOceanClient
from .config import DigitalOcean

__all__ = ["DigitalOcean", "DigitalOceanClient"]
