from collections.abc import Iterator
from contextlib import contextmanager
from urllib.parse import quote

import httpx

from hls_worker.storage.exceptions import BlobStoreError

DEFAULT_TIMEOUT_SECONDS = 60.0


class BlobStoreClient:
    """Client for the Supabase Storage REST API.

    Object addresses are bucket plus a slash separated key. Uploads always
    use upsert semantics so a retried publish overwrites partial output.
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._storage_url = f"{self._base_url}/storage/v1"
        self._client = httpx.Client(
            headers={
                "Authorization": f"Bearer {service_key}",
                "apikey": service_key,
            },
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> "BlobStoreClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def public_url(self, bucket: str, path: str) -> str:
        """URL of an object in a public bucket."""
        return f"{self._storage_url}/object/public/{bucket}/{_quote_key(path)}"

    def create_signed_url(self, bucket: str, path: str, expires_in: int) -> str:
        """Issue a time-limited download URL for an object.

        Raises:
            BlobStoreError: if the API refuses to sign or the request fails.
        """
        try:
            response = self._client.post(
                f"{self._storage_url}/object/sign/{bucket}/{_quote_key(path)}",
                json={"expiresIn": expires_in},
            )
        except httpx.HTTPError as exc:
            raise BlobStoreError(f"signing {bucket}/{path} failed: {exc}") from exc

        if response.status_code != httpx.codes.OK:
            raise BlobStoreError(
                f"signing {bucket}/{path} failed: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise BlobStoreError(f"signing {bucket}/{path} returned invalid JSON") from exc
        signed = payload.get("signedURL") or payload.get("signedUrl")
        if not signed:
            raise BlobStoreError(f"signing {bucket}/{path} returned no URL")
        if signed.startswith("http"):
            return signed
        return f"{self._storage_url}{signed}"

    @contextmanager
    def stream(self, url: str, timeout: float) -> Iterator[httpx.Response]:
        """Open a streaming GET. The body is read by the caller in chunks."""
        with self._client.stream("GET", url, timeout=timeout) as response:
            yield response

    def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str,
        *,
        upsert: bool = True,
    ) -> None:
        """Create or replace an object.

        Raises:
            BlobStoreError: on a non-success response or transport failure.
        """
        try:
            response = self._client.post(
                f"{self._storage_url}/object/{bucket}/{_quote_key(path)}",
                content=content,
                headers={
                    "Content-Type": content_type,
                    "x-upsert": "true" if upsert else "false",
                },
            )
        except httpx.HTTPError as exc:
            raise BlobStoreError(f"upload of {bucket}/{path} failed: {exc}") from exc

        if not response.is_success:
            raise BlobStoreError(
                f"upload of {bucket}/{path} failed: {response.text[:200]}",
                status_code=response.status_code,
            )


def _quote_key(path: str) -> str:
    return quote(path.lstrip("/"), safe="/")
