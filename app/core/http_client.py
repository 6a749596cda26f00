import httpx
from app.config import settings


class HttpClient:
    """Process-wide connection pool shared by the Telegram, Cloudinary, Pusher and Resend clients."""
    _client: httpx.Client = None

    @classmethod
    def get_client(cls) -> httpx.Client:
        if cls._client is None or cls._client.is_closed:
            cls._client = httpx.Client(timeout=settings.http_timeout_seconds)
        return cls._client

    @classmethod
    def close(cls):
        if cls._client is not None:
            cls._client.close()
            cls._client = None


def get_http_client() -> httpx.Client:
    return HttpClient.get_client()
