import logging
from urllib.parse import quote

import httpx

from ds_trend_pipeline.pipeline.errors import PublishFailed

from .base import CatalogSink
from .mapper import CatalogProduct

logger = logging.getLogger(__name__)


class HttpCatalogSink(CatalogSink):
    """Upserts products into a CMS over REST.

    ``PUT {api_url}/products/{sourceID}``: the CMS creates the entry on first
    sight and updates it afterwards, so repeated publishes never duplicate.
    """

    sink_name = "cms"

    def __init__(
        self,
        api_url: str,
        api_key: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.api_url = (api_url or "").rstrip("/")
        self._api_key = api_key
        self._client = client
        self._timeout = timeout

    async def _put(self, url: str, payload: dict, headers: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.put(url, json=payload, headers=headers, timeout=self._timeout)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.put(url, json=payload, headers=headers)

    async def _write(self, record: CatalogProduct) -> str:
        if not self.api_url or not self._api_key:
            raise PublishFailed(record.id, "CMS API configuration missing")

        url = f"{self.api_url}/products/{quote(record.id, safe='')}"
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        try:
            resp = await self._put(url, record.to_payload(), headers)
        except httpx.HTTPError as e:
            raise PublishFailed(record.id, f"CMS request failed: {e}") from e

        if resp.status_code >= 400:
            raise PublishFailed(record.id, f"CMS returned {resp.status_code}: {_error_message(resp)}")

        try:
            data = resp.json()
        except ValueError:
            data = {}
        remote_id = data.get("id")
        if remote_id is None and isinstance(data.get("data"), dict):
            remote_id = data["data"].get("id")
        return str(remote_id) if remote_id is not None else record.id


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if body.get("message"):
            return str(body["message"])
    return resp.text[:200]
