"""
Файловое хранилище тикетов.

Модуль предоставляет:
- Загрузку active_tickets.json в словарь TicketRecord
- Очередь сохранений с одним писателем (записи никогда не пересекаются)
- Атомарную запись через временный файл (сбой не портит прошлую версию)
- Статистику записи для /debug-tickets

Документ переписывается целиком при каждом сохранении.
"""

import asyncio
import json
import os
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import structlog

from core.exceptions import PersistenceFailure, TicketSystemError
from database.models import TicketRecord


logger = structlog.get_logger()


# ============================================================
# СТАТИСТИКА
# ============================================================

class StoreStats:
    """Статистика операций хранилища."""

    def __init__(self):
        self.write_count = 0
        self.error_count = 0
        self.last_write_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    def record_write(self) -> None:
        self.write_count += 1
        self.last_write_at = datetime.now(timezone.utc)

    def record_error(self, error: Exception) -> None:
        self.error_count += 1
        self.last_error = str(error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "writes": self.write_count,
            "errors": self.error_count,
            "last_write_at": self.last_write_at,
            "last_error": self.last_error,
        }


@dataclass
class _SaveRequest:
    """Запрос на запись: готовый JSON и future вызывающего."""
    payload: str
    future: "asyncio.Future[None]"


# ============================================================
# ХРАНИЛИЩЕ
# ============================================================

class TicketStore:
    """
    Долговременное хранилище тикетов в одном JSON документе.

    save() ставит снимок в очередь и ждёт, пока его запишет единственный
    фоновый писатель. Снимок сериализуется в момент вызова, поэтому
    последующие изменения реестра на него не влияют.
    """

    def __init__(self, path: Path):
        """
        Args:
            path: Путь к active_tickets.json
        """
        self.path = Path(path)
        self.stats = StoreStats()
        self._queue: Optional["asyncio.Queue[Optional[_SaveRequest]]"] = None
        self._worker: Optional["asyncio.Task[None]"] = None

    # ==================== LOAD ====================

    def load(self) -> Dict[str, TicketRecord]:
        """
        Загрузить тикеты из файла.

        Returns:
            Словарь channel_id -> TicketRecord.
            Пустой словарь если файла нет или он повреждён.
        """
        if not self.path.exists():
            logger.info("tickets_file_not_found", path=str(self.path))
            return {}

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(
                "tickets_load_failed",
                path=str(self.path),
                error=str(e),
                exc_info=True,
            )
            return {}

        if not isinstance(raw, dict):
            logger.error(
                "tickets_load_failed",
                path=str(self.path),
                error=f"Expected object, got {type(raw).__name__}",
            )
            return {}

        tickets: Dict[str, TicketRecord] = {}
        for key, value in raw.items():
            try:
                record = TicketRecord.from_dict(value, key=key)
            except (TicketSystemError, KeyError, ValueError, TypeError, AttributeError) as e:
                logger.warning("ticket_record_skipped", key=key, error=str(e))
                continue
            if record.channel_id != str(key):
                # Ключ документа главнее поля channelId
                logger.warning(
                    "ticket_channel_id_mismatch",
                    key=key,
                    channel_id=record.channel_id,
                )
                record = record.copy(channel_id=str(key))
            tickets[str(key)] = record

        logger.info("tickets_loaded", count=len(tickets), path=str(self.path))
        return tickets

    # ==================== SAVE ====================

    async def save(self, snapshot: Mapping[str, TicketRecord]) -> None:
        """
        Поставить снимок в очередь записи и дождаться записи на диск.

        Args:
            snapshot: Полное содержимое реестра

        Raises:
            PersistenceFailure: снимок не сериализуется или запись не удалась
        """
        try:
            payload = json.dumps(
                {channel_id: record.to_dict() for channel_id, record in snapshot.items()},
                indent=2,
                ensure_ascii=False,
            )
        except (TypeError, ValueError) as e:
            self.stats.record_error(e)
            logger.error("tickets_serialize_failed", error=str(e), exc_info=True)
            raise PersistenceFailure(f"Cannot serialize tickets: {e}") from e

        queue = self._ensure_worker()
        future: "asyncio.Future[None]" = asyncio.get_running_loop().create_future()
        await queue.put(_SaveRequest(payload=payload, future=future))
        await future

    def _ensure_worker(self) -> "asyncio.Queue[Optional[_SaveRequest]]":
        """Запустить писателя, если он ещё не запущен."""
        if self._worker is None or self._worker.done() or self._queue is None:
            self._queue = asyncio.Queue()
            self._worker = asyncio.get_running_loop().create_task(
                self._drain(self._queue),
                name="ticket-store-writer",
            )
        return self._queue

    async def _drain(self, queue: "asyncio.Queue[Optional[_SaveRequest]]") -> None:
        """Писатель: обрабатывает запросы строго по одному."""
        while True:
            request = await queue.get()
            try:
                if request is None:
                    return

                try:
                    await asyncio.to_thread(self._write, request.payload)
                except OSError as e:
                    self.stats.record_error(e)
                    logger.error(
                        "tickets_save_failed",
                        path=str(self.path),
                        error=str(e),
                        exc_info=True,
                    )
                    if not request.future.done():
                        request.future.set_exception(
                            PersistenceFailure(f"Failed to write {self.path}: {e}")
                        )
                else:
                    self.stats.record_write()
                    if not request.future.done():
                        request.future.set_result(None)
            finally:
                queue.task_done()

    def _write(self, payload: str) -> None:
        """
        Атомарная запись документа.

        Пишем во временный файл рядом, fsync, затем os.replace.
        При сбое старый файл остаётся нетронутым.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")

        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError:
            with suppress(OSError):
                tmp_path.unlink()
            raise

    async def close(self) -> None:
        """Дождаться записи всех снимков из очереди и остановить писателя."""
        if self._worker is None or self._queue is None or self._worker.done():
            return
        await self._queue.put(None)
        await self._worker
        self._worker = None
        self._queue = None
        logger.info("ticket_store_closed", writes=self.stats.write_count)

    # ==================== DIAGNOSTICS ====================

    def file_info(self) -> Dict[str, Any]:
        """
        Информация о файле для диагностики.

        Returns:
            path, exists, size (байты), modified_at (UTC)
        """
        info: Dict[str, Any] = {
            "path": str(self.path),
            "exists": self.path.exists(),
            "size": None,
            "modified_at": None,
        }
        if info["exists"]:
            try:
                stat = self.path.stat()
            except OSError as e:
                logger.warning("tickets_file_stat_failed", error=str(e))
            else:
                info["size"] = stat.st_size
                info["modified_at"] = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        return info
