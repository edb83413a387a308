"""Async client for the DigitalOcean droplets API."""

from __future__ import annotations

from typing import Any, cast

from loguru import logger

from nodeward.core.exceptions import CloudError
from nodeward.infra.http import BearerAuth, HttpClient, HttpError
from nodeward.infra.retry import on_status_code, retry
from nodeward.providers.provider import CloudInstance, InstanceSpec

from .config import DigitalOcean
from .types import DropletResponse, to_instance

_PAGE_SIZE = 200


class DigitalOceanClient:
    """CloudInstanceClient backed by DigitalOcean droplets.

    Example:
        async with DigitalOceanClient(DigitalOcean(region="fra1")) as client:
            instance = await client.create_instance(spec)
    """

    def __init__(self, config: DigitalOcean, http: HttpClient | None = None) -> None:
        self._config = config
        self._log = logger.bind(component="digitalocean")
        self._http = http or HttpClient(
            config.base_url,
            BearerAuth(config.resolve_token()),
            timeout=config.request_timeout,
            default_headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> DigitalOceanClient:
        return self

    async def __aexit__(self, *_args: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.close()

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            return await self._http.request(method, path, json=json, params=params)
        except HttpError as e:
            self._log.warning(
                "API error {method} {path}: {status}",
                method=method, path=path, status=e.status,
            )
            raise CloudError(f"DigitalOcean API error {e.status}: {e.body[:200]}", status=e.status) from e

    # =========================================================================
    # Droplets
    # =========================================================================

    @retry(on=on_status_code(429), max_attempts=3, base_delay=1.0)
    async def create_instance(self, spec: InstanceSpec) -> CloudInstance:
        body: dict[str, Any] = {
            "name": spec.name,
            "region": spec.region,
            "size": spec.size,
            "image": spec.image,
        }
        if spec.tags:
            body["tags"] = list(spec.tags)
        ssh_keys = spec.ssh_keys or (
            (self._config.ssh_key_fingerprint,) if self._config.ssh_key_fingerprint else ()
        )
        if ssh_keys:
            body["ssh_keys"] = list(ssh_keys)

        self._log.info("Creating droplet {name} ({size} in {region})", name=spec.name, size=spec.size, region=spec.region)
        result = await self._request("POST", "/droplets", json=body)
        droplet = (result or {}).get("droplet")
        if not droplet:
            raise CloudError("Failed to create droplet: empty response")
        return to_instance(cast(DropletResponse, droplet))

    @retry(on=on_status_code(429, 500, 502, 503), max_attempts=3, base_delay=1.0)
    async def get_instance(self, instance_id: str) -> CloudInstance | None:
        try:
            result = await self._request("GET", f"/droplets/{instance_id}")
        except CloudError as e:
            if e.status == 404:
                return None
            raise
        droplet = (result or {}).get("droplet")
        return to_instance(cast(DropletResponse, droplet)) if droplet else None

    @retry(on=on_status_code(429, 500, 502, 503), max_attempts=3, base_delay=1.0)
    async def delete_instance(self, instance_id: str) -> bool:
        try:
            await self._request("DELETE", f"/droplets/{instance_id}")
        except CloudError as e:
            if e.status == 404:
                self._log.info("Droplet {id} already gone", id=instance_id)
                return False
            raise
        self._log.info("Deleted droplet {id}", id=instance_id)
        return True

    @retry(on=on_status_code(429, 500, 502, 503), max_attempts=3, base_delay=1.0)
    async def list_instances(
        self, *, tag: str | None = None, name: str | None = None,
    ) -> list[CloudInstance]:
        params: dict[str, Any] = {"per_page": _PAGE_SIZE}
        if tag:
            params["tag_name"] = tag
        elif name:
            params["name"] = name

        droplets: list[DropletResponse] = []
        page = 1
        while True:
            result = await self._request("GET", "/droplets", params={**params, "page": page})
            page_droplets = (result or {}).get("droplets", [])
            droplets.extend(cast(list[DropletResponse], page_droplets))
            if len(page_droplets) < _PAGE_SIZE:
                break
            page += 1

        instances = [to_instance(d) for d in droplets]
        if name:
            instances = [i for i in instances if i.name == name]
        return instances
