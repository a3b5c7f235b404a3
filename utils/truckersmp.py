"""
Клиент TruckersMP API.

Используется для тикетов "Book Us": по ссылке на ивент из формы
подтягивает название, дату, сервер и маршрут.

Использует httpx для прямых запросов к API.
Любая ошибка не фатальна: клиент возвращает None.
"""

import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import httpx
import structlog

from utils.logging_config import log_api_call


logger = structlog.get_logger()


DEFAULT_API_URL = "https://api.truckersmp.com/v2"
EVENT_LINK_PATTERN = re.compile(r"truckersmp\.com/events/(\d+)", re.IGNORECASE)


@dataclass(frozen=True)
class TruckersMPEvent:
    """Данные ивента для отображения в тикете."""
    id: int
    name: str
    url: str
    start_at: Optional[datetime] = None
    server: Optional[str] = None
    departure: Optional[str] = None
    arrival: Optional[str] = None
    banner: Optional[str] = None
    confirmed_attendees: Optional[int] = None


def parse_event_id(link: Optional[str]) -> Optional[int]:
    """
    Извлечь ID ивента из ссылки.

    Пример:
        https://truckersmp.com/events/12345-convoy -> 12345

    Returns:
        ID или None если ссылка не похожа на ивент TruckersMP
    """
    if not link:
        return None
    match = EVENT_LINK_PATTERN.search(link)
    if match is None:
        return None
    return int(match.group(1))


def _place(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    parts = [data.get("city"), data.get("location")]
    text = " - ".join(str(p) for p in parts if p)
    return text or None


def _event_id(value: Any, fallback: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


def _parse_start(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class TruckersMPClient:
    """
    Клиент публичного API TruckersMP.

    Example:
        client = TruckersMPClient(timeout=10.0)
        event = await client.fetch_event_by_link(form_data["eventLink"])
    """

    name = "truckersmp"

    def __init__(self, base_url: str = DEFAULT_API_URL, timeout: float = 10.0):
        """
        Args:
            base_url: Базовый URL API
            timeout: Таймаут запроса в секундах
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def fetch_event(self, event_id: int) -> Optional[TruckersMPEvent]:
        """
        Получить ивент по ID.

        Returns:
            TruckersMPEvent или None при любой ошибке
        """
        endpoint = f"{self.base_url}/events/{event_id}"
        start = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(endpoint)
                response.raise_for_status()
                data = response.json()

        except httpx.TimeoutException:
            log_api_call(self.name, endpoint, (time.monotonic() - start) * 1000, False,
                         error=f"timeout ({self.timeout}s)")
            return None

        except httpx.HTTPStatusError as e:
            log_api_call(self.name, endpoint, (time.monotonic() - start) * 1000, False,
                         error=f"HTTP {e.response.status_code}")
            return None

        except (httpx.HTTPError, ValueError) as e:
            log_api_call(self.name, endpoint, (time.monotonic() - start) * 1000, False,
                         error=str(e))
            return None

        log_api_call(self.name, endpoint, (time.monotonic() - start) * 1000, True)
        return self._parse_event(event_id, data)

    async def fetch_event_by_link(self, link: Optional[str]) -> Optional[TruckersMPEvent]:
        """Получить ивент по ссылке из формы."""
        event_id = parse_event_id(link)
        if event_id is None:
            logger.info("truckersmp_link_not_recognized", link=link)
            return None
        return await self.fetch_event(event_id)

    def _parse_event(self, event_id: int, data: Dict[str, Any]) -> Optional[TruckersMPEvent]:
        if not isinstance(data, dict) or data.get("error"):
            logger.warning(
                "truckersmp_event_error_response",
                event_id=event_id,
                descriptor=data.get("descriptor") if isinstance(data, dict) else None,
            )
            return None

        payload = data.get("response")
        if not isinstance(payload, dict):
            logger.warning("truckersmp_event_bad_payload", event_id=event_id)
            return None

        server = payload.get("server")
        attendances = payload.get("attendances")

        return TruckersMPEvent(
            id=_event_id(payload.get("id"), event_id),
            name=str(payload.get("name") or f"Event #{event_id}"),
            url=str(payload.get("url") or f"https://truckersmp.com/events/{event_id}"),
            start_at=_parse_start(payload.get("start_at")),
            server=server.get("name") if isinstance(server, dict) else None,
            departure=_place(payload.get("departure")),
            arrival=_place(payload.get("arrive")),
            banner=payload.get("banner"),
            confirmed_attendees=attendances.get("confirmed") if isinstance(attendances, dict) else None,
        )
