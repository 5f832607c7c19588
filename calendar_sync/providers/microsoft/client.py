"""
Microsoft Graph calendar client over httpx.

Provides:
- Automatic retry with exponential backoff on 429/5xx
- Consistent error handling
- @odata.nextLink pagination for list operations
"""

import logging
from typing import Optional

import httpx

from calendar_sync.exceptions import ProviderNotFoundError
from calendar_sync.providers.http import api_retry, send

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
SERVICE = "Microsoft Graph"


class MicrosoftGraphClient:
    """Thin async wrapper around the Graph calendar endpoints for one access token."""

    def __init__(
        self,
        access_token: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=GRAPH_BASE_URL,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Prefer": 'outlook.timezone="UTC"',
            },
        )

    async def __aenter__(self) -> "MicrosoftGraphClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self._client.aclose()

    @api_retry
    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        return await send(self._client, method, url, SERVICE, **kwargs)

    async def _list_all(self, url: str, params: Optional[dict] = None) -> list[dict]:
        """Follow @odata.nextLink until every page has been read."""
        items: list[dict] = []
        next_url: Optional[str] = url

        while next_url:
            response = await self._request("GET", next_url, params=params)
            payload = response.json()
            items.extend(payload.get("value", []))

            next_url = payload.get("@odata.nextLink")
            # nextLink already carries the query string
            params = None

        return items

    async def get_me(self) -> dict:
        response = await self._request("GET", "/me", params={"$select": "id"})
        return response.json()

    async def list_calendars(self) -> list[dict]:
        return await self._list_all("/me/calendars")

    async def list_calendar_view(
        self,
        calendar_id: str,
        start: str,
        end: str,
        page_size: int = 100,
    ) -> list[dict]:
        """
        List event occurrences in a window.

        calendarView expands recurring series into occurrences.
        """
        items = await self._list_all(
            f"/me/calendars/{calendar_id}/calendarView",
            params={
                "startDateTime": start,
                "endDateTime": end,
                "$top": page_size,
                "$orderby": "start/dateTime",
            },
        )
        logger.debug(f"Listed {len(items)} events from {calendar_id}")
        return items

    async def create_event(self, calendar_id: str, body: dict) -> dict:
        response = await self._request("POST", f"/me/calendars/{calendar_id}/events", json=body)
        result = response.json()
        logger.info(f"Created event {result.get('id')} in {calendar_id}")
        return result

    async def update_event(self, calendar_id: str, event_id: str, body: dict) -> dict:
        response = await self._request(
            "PATCH", f"/me/calendars/{calendar_id}/events/{event_id}", json=body
        )
        logger.info(f"Patched event {event_id} in {calendar_id}")
        return response.json()

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        try:
            await self._request("DELETE", f"/me/calendars/{calendar_id}/events/{event_id}")
            logger.info(f"Deleted event {event_id} from {calendar_id}")
        except ProviderNotFoundError:
            # Already deleted - consider success
            logger.warning(f"Event {event_id} already deleted")
