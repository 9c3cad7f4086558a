"""Async JSON and text file helpers for the local store."""

import json
import logging
from pathlib import Path
from typing import Any

import aiofiles  # type: ignore[import-untyped]
from pydantic import BaseModel

from docset_preload.errors import StorageError

logger = logging.getLogger(__name__)


async def read_text(path: Path) -> str:
    async with aiofiles.open(path, encoding="utf-8") as f:
        return await f.read()


async def write_text(path: Path, content: str) -> None:
    try:
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(content)
    except OSError as e:
        raise StorageError(f"Failed to write {path}: {e}") from e


async def read_json(path: Path) -> Any | None:
    """Parsed JSON content, or None when the file is missing or unreadable."""
    try:
        raw = await read_text(path)
    except FileNotFoundError:
        return None
    except OSError:
        logger.warning("Could not read %s", path, exc_info=True)
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed JSON in %s", path)
        return None


def dump_model(model: BaseModel) -> str:
    return model.model_dump_json(by_alias=True, exclude_none=True, indent=2)


async def write_model(path: Path, model: BaseModel) -> None:
    await write_text(path, dump_model(model))


async def write_json(path: Path, data: Any) -> None:
    await write_text(path, json.dumps(data, ensure_ascii=False, indent=2))
