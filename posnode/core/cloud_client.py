"""
POS Node — HTTP client for the cloud replica

Every outbound call carries a bounded timeout. Tests and tools inject an
httpx transport instead of touching the network.
"""
import httpx

from posnode.core.config import get_settings

settings = get_settings()


def build_cloud_client(transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.CLOUD_API_URL,
        timeout=settings.CLOUD_HTTP_TIMEOUT_SECONDS,
        transport=transport,
    )


def cloud_headers(business_id: str, cloud_token: str | None) -> dict[str, str]:
    headers = {"X-Business-Id": business_id}
    if cloud_token:
        headers["Authorization"] = f"Bearer {cloud_token}"
    return headers
