"""
Twitter API v2 client for resolving post URLs to downloadable video variants.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from ..pipeline.config import ExternalClientConfig
from ..pipeline.errors import (
    DownloadFailedError,
    InvalidInputError,
    NoCredentialsError,
    NotFoundError,
    NoVideoFoundError,
    RateLimitedError,
    TwitterApiError,
)
from .cache import PostCache

logger = logging.getLogger(__name__)

POST_URL_PATTERN = re.compile(r"(?:twitter|x)\.com/\w+/status/(\d+)", re.IGNORECASE)

TWEET_LOOKUP_PARAMS = {
    "expansions": "attachments.media_keys,author_id",
    "media.fields": "duration_ms,height,media_key,preview_image_url,type,url,width,variants",
    "user.fields": "name,username",
}


@dataclass(frozen=True)
class VideoReference:
    """A post resolved to its best downloadable video."""
    post_id: str
    video_url: str
    author_name: str
    username: str
    text: str = ""


@dataclass(frozen=True)
class Credential:
    kind: str  # "app" or "consumer"
    bearer_token: Optional[str] = None
    api_key: Optional[str] = None
    api_secret: Optional[str] = None


def extract_post_id(url: str) -> str:
    """Extract the numeric post id from a twitter.com / x.com status URL."""
    match = POST_URL_PATTERN.search(url or "")
    if not match:
        raise InvalidInputError(f"Invalid Twitter URL format: {url!r}")
    return match.group(1)


def is_post_url(url: str) -> bool:
    return POST_URL_PATTERN.search(url or "") is not None


def select_credential(config: ExternalClientConfig) -> Credential:
    """Pick the first usable credential: app bearer token, then consumer key/secret."""
    missing = []
    if config.bearer_token:
        return Credential(kind="app", bearer_token=config.bearer_token)
    missing.append("No Twitter Bearer Token available")

    if config.api_key and config.api_secret:
        return Credential(kind="consumer", api_key=config.api_key, api_secret=config.api_secret)
    missing.append("No Twitter API Key/Secret available")

    raise NoCredentialsError(f"No valid Twitter API credentials: {', '.join(missing)}")


def select_best_variant(variants: List[Dict[str, Any]]) -> Optional[str]:
    """Return the URL of the highest-bitrate MP4 variant, first one on ties."""
    best: Optional[Dict[str, Any]] = None
    for variant in variants:
        if variant.get("content_type") != "video/mp4" or not variant.get("bit_rate"):
            continue
        if best is None or variant["bit_rate"] > best["bit_rate"]:
            best = variant
    return best.get("url") if best else None


def parse_video_reference(post_id: str, payload: Dict[str, Any]) -> VideoReference:
    """Build a VideoReference from a ``GET /2/tweets`` response body."""
    data = payload.get("data")
    tweet = data[0] if isinstance(data, list) and data else data
    if not tweet:
        details = "; ".join(e.get("detail", "") for e in payload.get("errors", []) if isinstance(e, dict))
        raise NotFoundError(f"Tweet not found: {post_id} {details}".strip())

    includes = payload.get("includes") or {}
    media_keys = (tweet.get("attachments") or {}).get("media_keys") or []
    if not media_keys:
        raise NoVideoFoundError(f"No media found in tweet {post_id}")

    media = next(
        (m for m in includes.get("media") or [] if m.get("media_key") == media_keys[0]),
        None,
    )
    if media is None or media.get("type") != "video":
        raise NoVideoFoundError(f"No video found in tweet {post_id}")

    video_url = select_best_variant(media.get("variants") or [])
    if not video_url:
        raise NoVideoFoundError(f"No MP4 video variant found in tweet {post_id}")

    users = includes.get("users") or []
    author = next((u for u in users if u.get("id") == tweet.get("author_id")), users[0] if users else {})

    return VideoReference(
        post_id=post_id,
        video_url=video_url,
        author_name=author.get("name") or "Unknown",
        username=author.get("username") or "unknown",
        text=tweet.get("text") or "",
    )


class TwitterClient:
    """Client for the Twitter API and for plain video downloads."""

    def __init__(self, config: ExternalClientConfig, cache: Optional[PostCache] = None):
        self.config = config
        self.cache = cache
        self._consumer_bearer: Optional[str] = None

    def _session(self) -> aiohttp.ClientSession:
        # Create a fresh session per request to avoid event loop issues
        connector = aiohttp.TCPConnector(limit=100, limit_per_host=30, enable_cleanup_closed=True)
        timeout = aiohttp.ClientTimeout(total=self.config.http_timeout_seconds)
        return aiohttp.ClientSession(connector=connector, timeout=timeout)

    async def _exchange_consumer_credentials(self, credential: Credential) -> str:
        """Trade consumer key/secret for an app-only bearer token."""
        if self._consumer_bearer is not None:
            return self._consumer_bearer

        url = f"{self.config.api_base_url}/oauth2/token"
        auth = aiohttp.BasicAuth(credential.api_key or "", credential.api_secret or "")
        try:
            async with self._session() as client:
                async with client.post(url, data={"grant_type": "client_credentials"}, auth=auth) as response:
                    if response.status == 429:
                        raise RateLimitedError("Twitter API rate limit exceeded (429)")
                    if response.status in (401, 403):
                        raise NoCredentialsError(f"Twitter rejected consumer credentials ({response.status})")
                    response.raise_for_status()
                    result = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TwitterApiError(f"Failed to obtain Twitter bearer token: {e}") from e

        token = result.get("access_token")
        if not token:
            raise NoCredentialsError("Twitter token endpoint returned no access token")
        self._consumer_bearer = token
        logger.info("Obtained app-only bearer token from consumer credentials")
        return token

    async def _authorization_header(self) -> str:
        credential = select_credential(self.config)
        if credential.kind == "app":
            return f"Bearer {credential.bearer_token}"
        token = await self._exchange_consumer_credentials(credential)
        return f"Bearer {token}"

    async def fetch_post(self, post_id: str) -> Dict[str, Any]:
        """Query the API for a post plus its attached media and author."""
        headers = {"Authorization": await self._authorization_header()}
        params = {"ids": post_id, **TWEET_LOOKUP_PARAMS}
        url = f"{self.config.api_base_url}/2/tweets"

        logger.debug(f"Fetching tweet {post_id} from {url}")
        try:
            async with self._session() as client:
                async with client.get(url, params=params, headers=headers) as response:
                    if response.status == 429:
                        raise RateLimitedError("Twitter API rate limit exceeded (429)")
                    if response.status in (401, 403):
                        raise NoCredentialsError(f"Twitter API rejected credentials ({response.status})")
                    if response.status == 404:
                        raise NotFoundError(f"Tweet not found: {post_id}")
                    if response.status >= 400:
                        body = await response.text()
                        raise TwitterApiError(f"Failed to fetch tweet ({response.status}): {body[:200]}")
                    return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TwitterApiError(f"Failed to fetch tweet: {e}") from e

    async def resolve_video(self, url: str) -> VideoReference:
        """Resolve a post URL to its metadata and best-quality video URL."""
        post_id = extract_post_id(url)

        if self.cache is not None:
            cached = self.cache.get(post_id)
            if cached is not None:
                logger.debug(f"Post {post_id} served from cache")
                return cached

        payload = await self.fetch_post(post_id)
        reference = parse_video_reference(post_id, payload)
        logger.info(f"Resolved tweet {post_id} by @{reference.username} to {reference.video_url}")

        if self.cache is not None:
            self.cache.set(post_id, reference)
        return reference

    async def download_video(self, url: str) -> bytes:
        """Fetch raw video bytes."""
        limit = self.config.max_download_bytes
        try:
            async with self._session() as client:
                async with client.get(url) as response:
                    if response.status >= 300:
                        raise DownloadFailedError(f"Video download returned HTTP {response.status}")
                    if response.content_length is not None and response.content_length > limit:
                        raise DownloadFailedError(
                            f"Video is too large ({response.content_length} bytes > {limit})"
                        )
                    data = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DownloadFailedError(f"Failed to download video: {e}") from e

        if len(data) > limit:
            raise DownloadFailedError(f"Video is too large ({len(data)} bytes > {limit})")
        logger.info(f"Downloaded {len(data)} bytes of video")
        return data
