"""Cloudinary CDN storage: signed uploads, deletes and delivery URLs."""
import hashlib
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from app.config import settings
from app.core.http_client import get_http_client

logger = logging.getLogger(__name__)

CLOUDINARY_API_BASE = "https://api.cloudinary.com/v1_1"
CLOUDINARY_DELIVERY_BASE = "https://res.cloudinary.com"
UPLOAD_TIMEOUT_SEC = 120

TRANSFORMATION_PRESETS = {
    "thumbnail": "c_fill,g_auto,w_150,h_150,q_auto:good,f_webp",
    "medium": "c_limit,w_400,h_400,q_auto:good,f_webp",
    "large": "c_limit,w_800,h_800,q_auto:good,f_webp",
    "placeholder": "c_fill,w_50,h_50,e_blur:800,q_auto:low,f_webp",
    "mobile": "c_limit,w_400,q_auto:good,f_webp",
    "tablet": "c_limit,w_600,q_auto:good,f_webp",
    "desktop": "c_limit,w_1200,q_auto:good,f_webp",
}


class CloudinaryError(Exception):
    pass


def sign_params(params: Dict[str, Any], api_secret: str) -> str:
    """SHA-1 over the sorted "k=v&k=v" string with the API secret appended."""
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, ""))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode()).hexdigest()


def read_payload(response: httpx.Response) -> Dict[str, Any]:
    """JSON body of an API response; error pages that are not JSON become CloudinaryError."""
    try:
        payload = response.json()
    except ValueError:
        raise CloudinaryError(f"Cloudinary error {response.status_code}: unreadable response")
    if not isinstance(payload, dict):
        raise CloudinaryError(f"Cloudinary error {response.status_code}: unexpected response")
    return payload


def build_transformation_url(cloud_name: str, public_id: str, preset: str, resource_type: str = "image") -> str:
    if preset not in TRANSFORMATION_PRESETS:
        raise ValueError(f"Unknown transformation preset: {preset}")
    return f"{CLOUDINARY_DELIVERY_BASE}/{cloud_name}/{resource_type}/upload/{TRANSFORMATION_PRESETS[preset]}/{public_id}"


class CloudinaryStorage:
    def __init__(
        self,
        cloud_name: Optional[str] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.cloud_name = cloud_name or settings.cloudinary_cloud_name
        self.api_key = api_key or settings.cloudinary_api_key
        self.api_secret = api_secret or settings.cloudinary_api_secret
        if not all([self.cloud_name, self.api_key, self.api_secret]):
            raise ValueError("Cloudinary cloud name, API key and API secret must be configured")
        self._http = http_client or get_http_client()
        self._clock = clock

    def _signed(self, params: Dict[str, Any]) -> Dict[str, Any]:
        params = {k: v for k, v in params.items() if v not in (None, "")}
        params["timestamp"] = int(self._clock())
        params["signature"] = sign_params(params, self.api_secret)
        params["api_key"] = self.api_key
        return params

    def upload(self, file_content: bytes, filename: str, folder: str, resource_type: str = "image",
               content_type: Optional[str] = None) -> Dict[str, Any]:
        """Upload bytes and return public_id, secure_url, bytes, format, resource_type (plus width/height/duration when present)."""
        url = f"{CLOUDINARY_API_BASE}/{self.cloud_name}/{resource_type}/upload"
        data = self._signed({"folder": folder})
        try:
            response = self._http.post(
                url,
                data={k: str(v) for k, v in data.items()},
                files={"file": (filename, file_content, content_type or "application/octet-stream")},
                timeout=UPLOAD_TIMEOUT_SEC,
            )
        except httpx.HTTPError as e:
            logger.error(f"Cloudinary upload request failed: {e}")
            raise CloudinaryError(f"Cloudinary unreachable: {e}")
        payload = read_payload(response)
        if response.status_code >= 400 or "error" in payload:
            message = (payload.get("error") or {}).get("message") or f"Cloudinary error {response.status_code}"
            logger.error(f"Cloudinary upload failed for {filename}: {message}")
            raise CloudinaryError(message)
        keys = ("public_id", "secure_url", "bytes", "format", "resource_type", "width", "height", "duration", "version")
        return {k: payload.get(k) for k in keys if k in payload}

    def delete(self, public_id: str, resource_type: str = "image") -> bool:
        """Destroy an asset; any failure is logged and reported as False."""
        url = f"{CLOUDINARY_API_BASE}/{self.cloud_name}/{resource_type}/destroy"
        try:
            response = self._http.post(url, data={k: str(v) for k, v in self._signed({"public_id": public_id}).items()})
            payload = read_payload(response)
        except (httpx.HTTPError, CloudinaryError) as e:
            logger.error(f"Failed to delete {public_id} from Cloudinary: {e}")
            return False
        deleted = response.status_code < 400 and payload.get("result") == "ok"
        if not deleted:
            logger.warning(f"Cloudinary did not delete {public_id}: {payload.get('result') or payload.get('error')}")
        return deleted
