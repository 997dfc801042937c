"""
Context Prefetcher

Fetches auxiliary text for URLs on platforms the grounding tool handles
poorly (X/Twitter posts, YouTube videos and playlists) so the enrichment
prompt has something concrete to work from. Prefetching is strictly best
effort: every failure is logged and turned into "no context".
"""

import asyncio
import json
import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

import httpx
from bs4 import BeautifulSoup

from bookmark_enricher.utils.api_key_validator import APIKeyValidator

X_API_URL = "https://api.twitter.com/2/tweets/{tweet_id}"
X_OEMBED_URL = "https://publish.twitter.com/oembed"
YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
YOUTUBE_PLAYLIST_URL = "https://www.youtube.com/playlist?list={playlist_id}"

MAX_PLAYLIST_TITLES = 15

TWEET_ID_PATTERN = re.compile(r"/status(?:es)?/(\d+)")
VIDEO_ID_PATTERNS = [
    re.compile(r"[?&]v=([\w-]{11})"),
    re.compile(r"youtu\.be/([\w-]{11})"),
    re.compile(r"youtube\.com/(?:embed|shorts|live|v)/([\w-]{11})"),
]
PLAYLIST_ID_PATTERN = re.compile(r"[?&]list=([\w-]+)")

META_KEYS = ("og:title", "og:description", "title", "description")

PLAYLIST_TITLE_PATTERNS = [
    re.compile(r'"title"\s*:\s*\{\s*"runs"\s*:\s*\[\s*\{\s*"text"\s*:\s*"((?:[^"\\]|\\.)*)"'),
    re.compile(r'"title"\s*:\s*\{\s*"simpleText"\s*:\s*"((?:[^"\\]|\\.)*)"'),
]


def detect_platform(url: str) -> Optional[str]:
    """
    Identify platforms that benefit from prefetched context.

    Returns:
        "x" for X/Twitter post links, "youtube" for YouTube links, else None
    """
    lowered = (url or "").lower()
    if ("twitter.com/" in lowered or "x.com/" in lowered) and "/status" in lowered:
        return "x"
    if "youtube.com/" in lowered or "youtu.be/" in lowered:
        return "youtube"
    return None


def extract_tweet_id(url: str) -> Optional[str]:
    """Extract the numeric post ID from an X/Twitter status URL."""
    match = TWEET_ID_PATTERN.search(url or "")
    return match.group(1) if match else None


def extract_youtube_ids(url: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Extract the video ID and playlist ID from a YouTube URL.

    Returns:
        Tuple of (video_id, playlist_id); either may be None
    """
    video_id = None
    for pattern in VIDEO_ID_PATTERNS:
        match = pattern.search(url or "")
        if match:
            video_id = match.group(1)
            break

    match = PLAYLIST_ID_PATTERN.search(url or "")
    playlist_id = match.group(1) if match else None
    return video_id, playlist_id


def extract_meta_fields(page: str) -> Dict[str, str]:
    """
    Extract title and description from a page's <meta> tags.

    ``og:*`` properties take priority over plain ``name=`` tags.
    """
    found: Dict[str, str] = {}
    soup = BeautifulSoup(page or "", "html.parser")
    for tag in soup.find_all("meta"):
        key = str(tag.get("property") or tag.get("name") or "").strip().lower()
        content = str(tag.get("content") or "").strip()
        if key in META_KEYS and content:
            found.setdefault(key, content)

    fields = {}
    title = found.get("og:title") or found.get("title")
    description = found.get("og:description") or found.get("description")
    if title:
        fields["title"] = title
    if description:
        fields["description"] = description
    return fields


def _decode_json_string(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except ValueError:
        return value


def extract_playlist_titles(page: str, limit: int = MAX_PLAYLIST_TITLES) -> List[str]:
    """Scrape playlist item titles from the page's inline JSON data."""
    titles: List[str] = []
    seen = set()
    for pattern in PLAYLIST_TITLE_PATTERNS:
        for raw in pattern.findall(page or ""):
            title = _decode_json_string(raw).strip()
            if not title or title in seen:
                continue
            seen.add(title)
            titles.append(title)
            if len(titles) >= limit:
                return titles
    return titles


def html_fragment_to_text(fragment: str) -> str:
    """Reduce an HTML fragment (e.g. an oEmbed blockquote) to plain text."""
    soup = BeautifulSoup(fragment or "", "html.parser")
    for script in soup.find_all("script"):
        script.decompose()
    return " ".join(soup.get_text(" ").split())


class ContextPrefetcher:
    """
    Best-effort context retrieval for social and video URLs.

    Use as an async context manager; ``fetch_context`` never raises.
    """

    def __init__(
        self,
        x_bearer_token: Optional[str] = None,
        proxy_url: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the prefetcher.

        Args:
            x_bearer_token: Optional X API v2 bearer token
            proxy_url: Relay base URL; the percent-encoded target is appended
            timeout: Timeout for every prefetch request in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.x_bearer_token = x_bearer_token
        self.proxy_url = proxy_url or ""
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.logger = logging.getLogger(__name__)

    async def __aenter__(self) -> "ContextPrefetcher":
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _relay(self, target_url: str) -> str:
        return f"{self.proxy_url}{quote(target_url, safe='')}"

    def _mask(self, message: str) -> str:
        return APIKeyValidator.mask_in_error_message(message, [self.x_bearer_token])

    async def fetch_context(self, url: str) -> Optional[str]:
        """
        Fetch context text for a URL.

        Returns:
            Context string, or None for unsupported URLs and on any failure
        """
        if self._client is None:
            self.logger.warning("Prefetcher used outside its context manager")
            return None

        platform = detect_platform(url)
        try:
            if platform == "x":
                return await self._fetch_x_context(url)
            if platform == "youtube":
                return await self._fetch_youtube_context(url)
        except Exception as e:
            # Prefetching must never break enrichment
            self.logger.warning(f"Context prefetch failed for {url}: {self._mask(str(e))}")
        return None

    async def fetch_contexts(self, urls: Iterable[str]) -> Dict[str, Optional[str]]:
        """Fetch context for several URLs concurrently."""
        urls = list(urls)
        results = await asyncio.gather(*(self.fetch_context(url) for url in urls))
        return dict(zip(urls, results))

    async def _fetch_x_context(self, url: str) -> Optional[str]:
        tweet_id = extract_tweet_id(url)
        if not tweet_id:
            return None

        if self.x_bearer_token:
            try:
                context = await self._fetch_x_api(tweet_id)
                if context:
                    return context
            except Exception as e:
                # Any failure of the API lookup, including an unreadable body
                self.logger.info(
                    f"X API lookup failed for {tweet_id}, falling back to oEmbed: "
                    f"{self._mask(str(e))}"
                )

        return await self._fetch_x_oembed(url)

    async def _fetch_x_api(self, tweet_id: str) -> Optional[str]:
        response = await self._client.get(
            X_API_URL.format(tweet_id=tweet_id),
            params={
                "tweet.fields": "created_at,text",
                "expansions": "author_id",
                "user.fields": "name,username",
            },
            headers={"Authorization": f"Bearer {self.x_bearer_token}"},
        )
        response.raise_for_status()
        payload = response.json()

        text = (payload.get("data") or {}).get("text")
        if not text:
            return None

        users = (payload.get("includes") or {}).get("users") or []
        author = ""
        if users:
            author = f"{users[0].get('name', '')} (@{users[0].get('username', '')})"
        created_at = (payload.get("data") or {}).get("created_at", "")

        parts = [f"Post text: {text}"]
        if author.strip():
            parts.append(f"Author: {author}")
        if created_at:
            parts.append(f"Posted at: {created_at}")
        return "\n".join(parts)

    async def _fetch_x_oembed(self, url: str) -> Optional[str]:
        response = await self._client.get(
            X_OEMBED_URL, params={"url": url, "omit_script": "true"}
        )
        response.raise_for_status()
        payload = response.json()

        text = html_fragment_to_text(payload.get("html", ""))
        if not text:
            return None

        author = payload.get("author_name")
        if author:
            return f"Post by {author}: {text}"
        return f"Post: {text}"

    async def _fetch_youtube_context(self, url: str) -> Optional[str]:
        if not self.proxy_url:
            self.logger.debug("No relay configured, skipping YouTube prefetch")
            return None

        video_id, playlist_id = extract_youtube_ids(url)
        if video_id:
            target = YOUTUBE_WATCH_URL.format(video_id=video_id)
        elif playlist_id:
            target = YOUTUBE_PLAYLIST_URL.format(playlist_id=playlist_id)
        else:
            return None

        response = await self._client.get(self._relay(target))
        response.raise_for_status()
        page = response.text

        fields = extract_meta_fields(page)
        parts = []
        if fields.get("title"):
            label = "Video title" if video_id else "Playlist title"
            parts.append(f"{label}: {fields['title']}")
        if fields.get("description"):
            parts.append(f"Description: {fields['description']}")

        if not video_id:
            titles = extract_playlist_titles(page)
            if titles:
                parts.append("Playlist items: " + "; ".join(titles))

        return "\n".join(parts) or None
