"""
Notion Sync Module

Pushes enriched bookmarks into a Notion database through the Notion REST API:
one page per bookmark, with URL, description, keywords and date columns and
the grounding sources listed in the page body.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from bookmark_enricher.core.data_models import (
    BookmarkRecord,
    parse_iso_datetime,
    utc_now_iso,
)
from bookmark_enricher.utils.api_key_validator import APIKeyValidator
from bookmark_enricher.utils.error_handler import EnricherError

NOTION_API_BASE = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"

MAX_RICH_TEXT_LENGTH = 2000
UNTITLED_DATABASE = "Untitled Database"

# Columns every synced database needs: name -> Notion property type
REQUIRED_PROPERTIES = {
    "URL": "url",
    "Description": "rich_text",
    "Keywords": "multi_select",
    "Date": "date",
}


class NotionError(EnricherError):
    """A Notion API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class NotionDatabase:
    """A database the integration token can see."""

    id: str
    title: str
    url: str = ""
    properties: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "NotionDatabase":
        title_parts = data.get("title") or []
        title = ""
        if title_parts and isinstance(title_parts[0], dict):
            title = title_parts[0].get("plain_text", "")
        return cls(
            id=data["id"],
            title=title or UNTITLED_DATABASE,
            url=data.get("url", ""),
            properties=data.get("properties") or {},
        )

    def has_property(self, name: str, prop_type: str) -> bool:
        return any(
            prop.get("name") == name and prop.get("type") == prop_type
            for prop in self.properties.values()
        )

    @property
    def title_property(self) -> str:
        """Name of the database's title column."""
        for key, prop in self.properties.items():
            if prop.get("type") == "title":
                return prop.get("name") or key
        return "Name"


@dataclass
class SyncResult:
    """Counts of pages created and records that failed."""

    success: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.success + self.failed


class NotionSyncClient:
    """
    Minimal async Notion API client for bookmark sync.

    Use as an async context manager. When ``proxy_url`` is set every request
    goes to the relay with the percent-encoded API URL appended.
    """

    def __init__(
        self,
        token: str,
        proxy_url: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            token: Notion integration token
            proxy_url: Optional relay base URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.token = token
        self.proxy_url = proxy_url or ""
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.logger = logging.getLogger(__name__)

    async def __aenter__(self) -> "NotionSyncClient":
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout), transport=self._transport
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _url(self, endpoint: str) -> str:
        target = f"{NOTION_API_BASE}{endpoint}"
        if self.proxy_url:
            return f"{self.proxy_url}{quote(target, safe='')}"
        return target

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Notion-Version": NOTION_VERSION,
            "Content-Type": "application/json",
        }

    async def _request(
        self, method: str, endpoint: str, body: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Perform one API call.

        Raises:
            NotionError: On transport failures and non-success responses
        """
        if not self._client:
            raise NotionError("Client not initialized - use async context manager")

        try:
            response = await self._client.request(
                method, self._url(endpoint), json=body, headers=self._headers()
            )
        except httpx.HTTPError as e:
            message = APIKeyValidator.mask_in_error_message(str(e), [self.token])
            raise NotionError(f"Notion request failed: {message}") from e

        if response.status_code >= 400:
            message = f"Notion API Error: {response.status_code}"
            try:
                payload = response.json()
                if isinstance(payload, dict) and payload.get("message"):
                    message = payload["message"]
            except ValueError:
                pass
            raise NotionError(message, response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise NotionError(f"Invalid JSON from Notion: {e}") from e

    async def list_databases(self) -> List[NotionDatabase]:
        """Return every database shared with the integration."""
        data = await self._request(
            "POST",
            "/search",
            {"filter": {"value": "database", "property": "object"}, "page_size": 100},
        )
        databases = [NotionDatabase.from_api(item) for item in data.get("results") or []]
        self.logger.info(f"Found {len(databases)} accessible Notion database(s)")
        return databases

    async def ensure_schema(self, database: NotionDatabase) -> List[str]:
        """
        Add any missing bookmark columns to the database.

        Returns:
            Names of the columns that were added
        """
        missing = {
            name: {prop_type: {}}
            for name, prop_type in REQUIRED_PROPERTIES.items()
            if not database.has_property(name, prop_type)
        }
        if not missing:
            return []

        await self._request("PATCH", f"/databases/{database.id}", {"properties": missing})
        self.logger.info(f"Added columns to {database.title}: {', '.join(missing)}")
        return list(missing)

    def build_page(self, database: NotionDatabase, record: BookmarkRecord) -> Dict[str, Any]:
        """Build the page-creation payload for one record."""
        properties: Dict[str, Any] = {
            database.title_property: {
                "title": [{"text": {"content": record.title or "Untitled"}}]
            },
            "URL": {"url": record.url},
            "Description": {
                "rich_text": [
                    {"text": {"content": (record.summary or "")[:MAX_RICH_TEXT_LENGTH]}}
                ]
            },
        }

        if record.keywords:
            properties["Keywords"] = {
                "multi_select": [{"name": k.replace(",", "")} for k in record.keywords]
            }

        moment = parse_iso_datetime(record.created_at)
        properties["Date"] = {
            "date": {"start": moment.isoformat() if moment else utc_now_iso()}
        }

        page: Dict[str, Any] = {
            "parent": {"database_id": database.id},
            "properties": properties,
        }

        if record.sources:
            children = [
                {
                    "object": "block",
                    "type": "heading_3",
                    "heading_3": {
                        "rich_text": [{"type": "text", "text": {"content": "Sources"}}]
                    },
                }
            ]
            for source in record.sources:
                children.append(
                    {
                        "object": "block",
                        "type": "bulleted_list_item",
                        "bulleted_list_item": {
                            "rich_text": [
                                {
                                    "type": "text",
                                    "text": {
                                        "content": source.title or source.uri,
                                        "link": {"url": source.uri},
                                    },
                                }
                            ]
                        },
                    }
                )
            page["children"] = children

        return page

    async def sync(
        self, database: NotionDatabase, records: List[BookmarkRecord]
    ) -> SyncResult:
        """
        Create one page per record in ``database``.

        A schema update failure is logged and the sync continues with the
        existing columns. Per-record failures are counted, not raised.
        """
        try:
            await self.ensure_schema(database)
        except NotionError as e:
            self.logger.warning(
                f"Failed to update database schema, continuing with existing columns: {e}"
            )

        result = SyncResult()
        for record in records:
            try:
                await self._request("POST", "/pages", self.build_page(database, record))
                result.success += 1
            except NotionError as e:
                self.logger.error(f"Failed to export {record.url} to Notion: {e}")
                result.failed += 1

        self.logger.info(
            f"Notion sync finished: {result.success} created, {result.failed} failed"
        )
        return result
