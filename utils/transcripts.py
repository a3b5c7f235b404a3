"""
Транскрипты тикетов.

Использует reportlab для генерации PDF с историей сообщений канала.
Если сборка PDF не удалась, используется текстовый файл.
"""

import asyncio
import io
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence
from xml.sax.saxutils import escape

import structlog
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFError, TTFont
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

from core.exceptions import TranscriptError
from core.validators import sanitize_channel_name, utc_now


logger = structlog.get_logger()


SEPARATOR = "─" * 60
CUSTOM_FONT_NAME = "TranscriptSans"


# ============================================================
# МОДЕЛИ
# ============================================================

@dataclass(frozen=True)
class TranscriptEntry:
    """Одно сообщение канала."""
    author: str
    content: str
    created_at: datetime
    attachments: Sequence[str] = ()


@dataclass
class TranscriptOptions:
    """
    Параметры документа.

    Attributes:
        channel_name: Имя канала (идёт в имя файла)
        header: Заголовок, например "Ticket Transcript - Support"
        footer: Подпись, например "Transcript saved by user#0001"
        details: Дополнительные строки под заголовком
    """
    channel_name: str
    header: str
    footer: str = ""
    details: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TranscriptFile:
    """Готовый файл для отправки в Discord."""
    filename: str
    data: bytes
    content_type: str


# ============================================================
# ЭКСПОРТЕРЫ
# ============================================================

class ReportLabTranscriptExporter:
    """Экспорт транскрипта в PDF через reportlab."""

    def __init__(self, font_path: Optional[Path] = None):
        """
        Args:
            font_path: TTF шрифт с поддержкой кириллицы/эмодзи (опционально)
        """
        self.font_name = "Helvetica"
        self.font_bold = "Helvetica-Bold"

        if font_path is not None:
            try:
                if CUSTOM_FONT_NAME not in pdfmetrics.getRegisteredFontNames():
                    pdfmetrics.registerFont(TTFont(CUSTOM_FONT_NAME, str(font_path)))
                self.font_name = CUSTOM_FONT_NAME
                self.font_bold = CUSTOM_FONT_NAME
            except (OSError, TTFError) as e:
                logger.error(
                    "transcript_font_register_failed",
                    font_path=str(font_path),
                    error=str(e),
                )

    def render(self, entries: Sequence[TranscriptEntry], options: TranscriptOptions) -> bytes:
        """Собрать PDF (блокирующий вызов)."""
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=20 * mm,
            leftMargin=20 * mm,
            topMargin=20 * mm,
            bottomMargin=20 * mm,
            title=options.header,
        )

        styles = getSampleStyleSheet()

        title_style = ParagraphStyle(
            "TranscriptTitle",
            parent=styles["Title"],
            fontName=self.font_bold,
            fontSize=16,
            alignment=TA_CENTER,
            spaceAfter=8,
        )
        subtitle_style = ParagraphStyle(
            "TranscriptSubtitle",
            parent=styles["Normal"],
            fontName=self.font_name,
            fontSize=10,
            alignment=TA_CENTER,
            textColor=colors.gray,
            spaceAfter=4,
        )
        author_style = ParagraphStyle(
            "TranscriptAuthor",
            parent=styles["Normal"],
            fontName=self.font_bold,
            fontSize=10,
            spaceBefore=8,
            spaceAfter=2,
        )
        body_style = ParagraphStyle(
            "TranscriptBody",
            parent=styles["Normal"],
            fontName=self.font_name,
            fontSize=10,
            leading=14,
            leftIndent=8,
        )
        footer_style = ParagraphStyle(
            "TranscriptFooter",
            parent=styles["Normal"],
            fontName=self.font_name,
            fontSize=9,
            alignment=TA_CENTER,
            textColor=colors.gray,
        )

        story = [Paragraph(escape(options.header), title_style)]
        for line in options.details:
            story.append(Paragraph(escape(line), subtitle_style))
        story.append(Spacer(1, 10))
        story.append(Paragraph(SEPARATOR, body_style))

        if not entries:
            story.append(Paragraph("No messages.", body_style))

        for entry in entries:
            stamp = entry.created_at.strftime("%Y-%m-%d %H:%M:%S")
            story.append(Paragraph(f"{escape(entry.author)} <font color='gray'>{stamp}</font>", author_style))
            for line in entry.content.splitlines() or [""]:
                if line.strip():
                    story.append(Paragraph(escape(line), body_style))
            for attachment in entry.attachments:
                story.append(Paragraph(f"[attachment] {escape(attachment)}", body_style))

        if options.footer:
            story.append(Spacer(1, 16))
            story.append(Paragraph(SEPARATOR, body_style))
            story.append(Paragraph(escape(options.footer), footer_style))

        doc.build(story)
        return buffer.getvalue()


class TextTranscriptExporter:
    """Fallback экспорт в текстовый файл."""

    def render(self, entries: Sequence[TranscriptEntry], options: TranscriptOptions) -> bytes:
        lines = ["=" * 60, options.header, *options.details, "=" * 60, ""]

        for entry in entries:
            stamp = entry.created_at.strftime("%Y-%m-%d %H:%M:%S")
            lines.append(f"[{stamp}] {entry.author}")
            lines.extend(f"    {line}" for line in entry.content.splitlines())
            lines.extend(f"    [attachment] {a}" for a in entry.attachments)

        if not entries:
            lines.append("No messages.")

        lines.extend(["", "=" * 60])
        if options.footer:
            lines.append(options.footer)
        return ("\n".join(lines) + "\n").encode("utf-8")


# ============================================================
# ГЛАВНЫЙ КЛАСС
# ============================================================

class TranscriptRenderer:
    """
    Генератор транскриптов.

    Сначала PDF, при ошибке сборки - текстовый файл.
    Блокирующая сборка выполняется в отдельном потоке.
    """

    def __init__(self, font_path: Optional[Path] = None):
        self._pdf = ReportLabTranscriptExporter(font_path)
        self._text = TextTranscriptExporter()

    @staticmethod
    def build_filename(channel_name: str, extension: str, when: Optional[datetime] = None) -> str:
        """transcript-<канал>-<YYYYmmdd-HHMMSS>.<ext>"""
        when = when or utc_now()
        name = sanitize_channel_name(channel_name) or "ticket"
        return f"transcript-{name}-{when.strftime('%Y%m%d-%H%M%S')}.{extension}"

    async def render(
        self,
        entries: Sequence[TranscriptEntry],
        options: TranscriptOptions,
    ) -> TranscriptFile:
        """
        Сгенерировать транскрипт.

        Raises:
            TranscriptError: не удалось собрать ни PDF, ни текст
        """
        try:
            data = await asyncio.to_thread(self._pdf.render, entries, options)
            return TranscriptFile(
                filename=self.build_filename(options.channel_name, "pdf"),
                data=data,
                content_type="application/pdf",
            )
        except (ValueError, TypeError, OSError, AttributeError) as e:
            logger.error(
                "transcript_pdf_failed",
                channel_name=options.channel_name,
                error=str(e),
                exc_info=True,
            )

        try:
            data = self._text.render(entries, options)
        except (ValueError, TypeError, UnicodeError) as e:
            logger.error("transcript_text_failed", channel_name=options.channel_name, error=str(e))
            raise TranscriptError(f"Failed to render transcript: {e}") from e

        logger.info("transcript_text_fallback_used", channel_name=options.channel_name)
        return TranscriptFile(
            filename=self.build_filename(options.channel_name, "txt"),
            data=data,
            content_type="text/plain",
        )
