"""Telegram Bot API client with rate-limit aware retries."""
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import httpx

from app.config import settings
from app.core.http_client import get_http_client

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
MAX_MEDIA_PER_GROUP = 10
IMAGE_GROUP_PAUSE_SEC = 5
VIDEO_GROUP_PAUSE_SEC = 10


class TelegramError(Exception):
    def __init__(self, description: str, status_code: Optional[int] = None):
        super().__init__(description)
        self.description = description
        self.status_code = status_code


def normalize_group_chat_id(chat_id: str) -> str:
    """Group chat ids are negative; prefix bare numeric ids with a minus sign."""
    chat_id = str(chat_id).strip()
    if chat_id and not chat_id.startswith("-") and chat_id.isdigit():
        return f"-{chat_id}"
    return chat_id


def chunk_media(urls: List[str], size: int = MAX_MEDIA_PER_GROUP) -> List[List[str]]:
    return [urls[i:i + size] for i in range(0, len(urls), size)]


def build_media_items(urls: List[str], media_type: str, caption: Optional[str] = None) -> List[Dict[str, Any]]:
    """sendMediaGroup items; the caption goes on the first item only."""
    items = []
    for index, url in enumerate(urls):
        item = {"type": media_type, "media": url}
        if index == 0 and caption:
            item["caption"] = caption
            item["parse_mode"] = "HTML"
        items.append(item)
    return items


class TelegramClient:
    def __init__(
        self,
        bot_token: Optional[str],
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
        max_retries: int = 3,
    ):
        self.bot_token = bot_token
        self._http = http_client or get_http_client()
        self._sleep = sleep
        self.max_retries = max_retries

    @property
    def configured(self) -> bool:
        return bool(self.bot_token)

    def call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Call a Bot API method. Retries on 429 (honouring retry_after) and on network errors."""
        if not self.bot_token:
            raise TelegramError("TELEGRAM_BOT_TOKEN not configured")
        url = f"{TELEGRAM_API_BASE}/bot{self.bot_token}/{method}"
        attempt = 0
        while True:
            attempt += 1
            try:
                response = self._http.post(url, json=payload)
            except httpx.HTTPError as e:
                if attempt >= self.max_retries:
                    raise TelegramError(f"Network error calling {method}: {e}")
                logger.warning("Telegram %s network error (attempt %s/%s): %s", method, attempt, self.max_retries, e)
                self._sleep(1)
                continue

            try:
                result = response.json()
            except ValueError:
                result = {"ok": False, "description": response.text}

            if response.status_code == 429 and attempt < self.max_retries:
                retry_after = (result.get("parameters") or {}).get("retry_after", 1)
                logger.warning("Telegram rate limited on %s, waiting %ss", method, retry_after + 1)
                self._sleep(retry_after + 1)
                continue

            if response.status_code >= 400 or not result.get("ok"):
                raise TelegramError(
                    result.get("description") or f"Telegram API error: {response.status_code}",
                    status_code=response.status_code,
                )
            return result

    def send_message(self, chat_id, text: str, disable_web_page_preview: bool = False) -> Dict[str, Any]:
        return self.call("sendMessage", {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": disable_web_page_preview,
        })

    def send_photo(self, chat_id, photo: str, caption: Optional[str] = None) -> Dict[str, Any]:
        payload = {"chat_id": chat_id, "photo": photo}
        if caption:
            payload["caption"] = caption
            payload["parse_mode"] = "HTML"
        return self.call("sendPhoto", payload)

    def send_media_group(self, chat_id, media: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self.call("sendMediaGroup", {"chat_id": chat_id, "media": media})

    def get_file_path(self, file_id: str) -> str:
        """Server-side path of an uploaded file, valid for about an hour."""
        result = self.call("getFile", {"file_id": file_id})
        file_path = (result.get("result") or {}).get("file_path")
        if not file_path:
            raise TelegramError(f"Telegram returned no file path for {file_id}")
        return file_path

    def download_file(self, file_path: str) -> bytes:
        if not self.bot_token:
            raise TelegramError("TELEGRAM_BOT_TOKEN not configured")
        try:
            response = self._http.get(f"{TELEGRAM_API_BASE}/file/bot{self.bot_token}/{file_path}")
        except httpx.HTTPError as e:
            raise TelegramError(f"Failed to download {file_path}: {e}")
        if response.status_code >= 400:
            raise TelegramError(f"Failed to download {file_path}", status_code=response.status_code)
        return response.content

    def send_media_groups(self, urls: List[str], caption: Optional[str], chat_id, media_type: str = "photo") -> bool:
        """Send urls as consecutive media groups of 10. Returns False if any group failed."""
        if not urls:
            return True
        pause = VIDEO_GROUP_PAUSE_SEC if media_type == "video" else IMAGE_GROUP_PAUSE_SEC
        all_sent = True
        for index, chunk in enumerate(chunk_media(urls)):
            if index > 0:
                self._sleep(pause)
            items = build_media_items(chunk, media_type, caption if index == 0 else None)
            try:
                self.send_media_group(chat_id, items)
            except TelegramError as e:
                logger.error("Failed to send %s group %s to %s: %s", media_type, index + 1, chat_id, e.description)
                all_sent = False
        return all_sent


def get_telegram_client() -> TelegramClient:
    return TelegramClient(settings.telegram_bot_token)
