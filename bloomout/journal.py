from __future__ import annotations

import asyncio
import base64
import io
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger
from PIL import Image, ImageColor, ImageDraw, UnidentifiedImageError

from .achievements import JOURNAL_SAVED, AchievementEngine, TriggerEvent
from .errors import PersistenceReadError, StoreInvariantViolation
from .progress import ProgressStore
from .storage import JOURNAL_KEY, KeyValueStore, dump_json, load_json
from .states import PageStyle, utcnow


@dataclass
class JournalEntry:
    id: str
    created_at: str
    updated_at: str
    title: str = ""
    body: str = ""
    page_style: PageStyle = PageStyle.LINED
    # self-contained encoded rasters (data URLs), each independently optional
    doodle_layer: Optional[str] = None
    image_layer: Optional[str] = None

    @property
    def has_artifacts(self) -> bool:
        return bool(self.doodle_layer) or bool(self.image_layer)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "date": self.updated_at,
            "title": self.title,
            "content": self.body,
            "pageStyle": self.page_style.value,
        }
        if self.doodle_layer:
            out["doodleData"] = self.doodle_layer
        if self.image_layer:
            out["imageData"] = self.image_layer
        return out

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "JournalEntry":
        created = raw.get("createdAt") or raw.get("date") or ""
        return cls(
            id=str(raw["id"]),
            created_at=created,
            updated_at=raw.get("updatedAt") or raw.get("date") or created,
            title=raw.get("title") or "",
            body=raw.get("content") or raw.get("body") or "",
            page_style=PageStyle.parse(raw.get("pageStyle")),
            doodle_layer=raw.get("doodleData") or None,
            image_layer=raw.get("imageData") or None,
        )


@dataclass
class JournalDraft:
    """Editor contents to save; ``id`` is None for a brand new entry."""

    title: str = ""
    body: str = ""
    page_style: PageStyle = PageStyle.LINED
    doodle_layer: Optional[str] = None
    image_layer: Optional[str] = None
    id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.title.strip() and not self.body.strip()


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _parse_timestamp(value: str) -> datetime:
    """ISO timestamp to an aware datetime; legacy values end in 'Z', unparsable ones sort last."""
    text = (value or "").strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        return _EPOCH
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


class JournalStore:
    """Persisted journal entries; every mutation rewrites the full snapshot."""

    def __init__(self, kv: KeyValueStore, clock: Callable[[], datetime] = utcnow) -> None:
        self.kv = kv
        self.clock = clock

    def _load(self) -> List[JournalEntry]:
        try:
            raw = load_json(self.kv, JOURNAL_KEY)
        except PersistenceReadError as e:
            logger.warning(f"journal_unreadable | using empty journal | {e}")
            return []
        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.warning("journal_unreadable | using empty journal | document is not a list")
            return []
        entries: List[JournalEntry] = []
        seen = set()
        for item in raw:
            if not isinstance(item, dict) or not item.get("id"):
                logger.warning("journal_entry_skipped | entry without id")
                continue
            entry = JournalEntry.from_dict(item)
            if entry.id in seen:
                logger.warning(f"journal_entry_skipped | duplicate id={entry.id}")
                continue
            seen.add(entry.id)
            entries.append(entry)
        return entries

    def _save(self, entries: List[JournalEntry]) -> None:
        dump_json(self.kv, JOURNAL_KEY, [e.to_dict() for e in entries])

    def _mint_id(self, now: datetime, existing: set) -> str:
        base = f"journal_{int(now.timestamp() * 1000)}"
        candidate = base
        n = 1
        while candidate in existing:
            candidate = f"{base}_{n}"
            n += 1
        return candidate

    def list_entries(self) -> List[JournalEntry]:
        """All entries, most recently modified first."""
        return sorted(self._load(), key=lambda e: _parse_timestamp(e.updated_at), reverse=True)

    def get(self, entry_id: str) -> Optional[JournalEntry]:
        for entry in self._load():
            if entry.id == entry_id:
                return entry
        return None

    def create_or_update(self, draft: JournalDraft) -> JournalEntry:
        entries = self._load()
        moment = self.clock()
        now = moment.isoformat()
        if draft.id is None:
            entry_id = self._mint_id(moment, {e.id for e in entries})
            entry = JournalEntry(
                id=entry_id,
                created_at=now,
                updated_at=now,
                title=draft.title,
                body=draft.body,
                page_style=draft.page_style,
                doodle_layer=draft.doodle_layer,
                image_layer=draft.image_layer,
            )
            entries.insert(0, entry)
        else:
            index = next((i for i, e in enumerate(entries) if e.id == draft.id), None)
            if index is None:
                raise StoreInvariantViolation(f"no journal entry with id {draft.id}")
            entry = replace(
                entries[index],
                title=draft.title,
                body=draft.body,
                page_style=draft.page_style,
                doodle_layer=draft.doodle_layer,
                image_layer=draft.image_layer,
                updated_at=now,
            )
            entries[index] = entry
        self._save(entries)
        return entry

    def delete(self, entry_id: str) -> bool:
        entries = self._load()
        remaining = [e for e in entries if e.id != entry_id]
        if len(remaining) == len(entries):
            return False
        self._save(remaining)
        return True


class JournalService:
    """Screen-facing journal operations that also feed the progress layer."""

    def __init__(self, store: JournalStore, progress: ProgressStore, engine: AchievementEngine) -> None:
        self.store = store
        self.progress = progress
        self.engine = engine

    def entries(self) -> List[JournalEntry]:
        return self.store.list_entries()

    def save(self, draft: JournalDraft) -> Optional[JournalEntry]:
        if draft.is_empty:
            return None
        created = draft.id is None
        try:
            entry = self.store.create_or_update(draft)
        except StoreInvariantViolation as e:
            logger.error(f"journal_save_rejected | {e}")
            return None
        logger.info(f"journal_saved | id={entry.id} created={created} artifacts={entry.has_artifacts}")
        progress = self.progress.load()
        if created:
            progress.record_journal_entry()
            self.progress.save(progress)
        self.engine.evaluate(TriggerEvent(kind=JOURNAL_SAVED, has_artifacts=entry.has_artifacts), progress)
        return entry

    def delete(self, entry_id: str, confirm: Optional[Callable[[], bool]] = None) -> bool:
        """Delete after the (external) confirmation step agrees."""
        if confirm is not None and not confirm():
            return False
        removed = self.store.delete(entry_id)
        logger.info(f"journal_deleted | id={entry_id} removed={removed}")
        return removed


def to_data_url(data: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def from_data_url(url: str) -> Tuple[str, bytes]:
    header, _, payload = url.partition(",")
    if not header.startswith("data:") or ";base64" not in header:
        raise ValueError("not a base64 data URL")
    mime = header[5:].split(";", 1)[0]
    return mime, base64.b64decode(payload)


class DoodleSurface:
    """Raster doodle canvas fed with pointer-drag coordinates.

    Strokes are painted straight onto the bitmap; there is no stroke history,
    so ``encode`` always captures the whole surface as one PNG artifact.
    """

    line_width = 3

    def __init__(self, width: int = 800, height: int = 600, seed: Optional[str] = None) -> None:
        self.image = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        self._draw = ImageDraw.Draw(self.image)
        self._last: Optional[Tuple[float, float]] = None
        self._color: Tuple[int, ...] = (0, 0, 0, 255)
        if seed:
            self.load(seed)

    def load(self, data_url: str) -> None:
        try:
            _, raw = from_data_url(data_url)
            layer = Image.open(io.BytesIO(raw)).convert("RGBA")
        except (ValueError, OSError, SyntaxError) as e:
            logger.warning(f"doodle_seed_unreadable | {e}")
            return
        self.image.alpha_composite(layer.crop((0, 0, self.image.width, self.image.height)))

    def _dot(self, x: float, y: float) -> None:
        r = self.line_width / 2
        self._draw.ellipse((x - r, y - r, x + r, y + r), fill=self._color)

    def begin_stroke(self, x: float, y: float, color: str = "#000000") -> None:
        self._color = ImageColor.getrgb(color)
        if len(self._color) == 3:
            self._color = (*self._color, 255)
        self._last = (x, y)
        self._dot(x, y)

    def extend_stroke(self, x: float, y: float) -> None:
        if self._last is None:
            return
        self._draw.line([self._last, (x, y)], fill=self._color, width=self.line_width)
        self._dot(x, y)
        self._last = (x, y)

    def end_stroke(self) -> None:
        self._last = None

    def clear(self) -> None:
        self._draw.rectangle((0, 0, self.image.width, self.image.height), fill=(0, 0, 0, 0))
        self._last = None

    @property
    def is_blank(self) -> bool:
        return self.image.getbbox() is None

    def encode(self) -> Optional[str]:
        if self.is_blank:
            return None
        buf = io.BytesIO()
        self.image.save(buf, format="PNG")
        return to_data_url(buf.getvalue(), "image/png")


async def read_image_artifact(path: Path | str) -> Optional[str]:
    """Read a user-picked image file into a data URL; None if it is not a raster image."""
    try:
        data = await asyncio.to_thread(Path(path).read_bytes)
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
            fmt = img.format or ""
    except (OSError, SyntaxError, UnidentifiedImageError) as e:
        # Pillow reports broken PNG chunks (bad CRC) as SyntaxError
        logger.warning(f"image_artifact_unreadable | path={path} | {e}")
        return None
    mime = Image.MIME.get(fmt, "application/octet-stream")
    logger.debug(f"image_artifact_loaded | path={path} format={fmt} bytes={len(data)}")
    return to_data_url(data, mime)
