"""Per-job scratch output: one JSON file per fetched page plus a JSONL roll-up."""

import json
import logging
from pathlib import Path

import aiofiles.os  # type: ignore[import-untyped]

from docset_preload.errors import StorageError
from docset_preload.index.models import PreloadItem
from docset_preload.output.files import dump_model, read_text, write_text
from docset_preload.utils.url_utils import slugify, url_leaf

logger = logging.getLogger(__name__)

DOCS_JSON_DIR = "docs-json"
JSONL_FILE = "scraped.jsonl"


class ScratchSession:
    """Scratch directory ``root/<job_id>/`` for one preload job.

    File names come from the page's path leaf (else its URL leaf) and are
    made unique within the session with a ``-N`` suffix.
    """

    def __init__(self, root: Path, job_id: str):
        self.directory = Path(root) / job_id
        self.docs_json_dir = self.directory / DOCS_JSON_DIR
        self._used_names: set[str] = set()
        self._sequence = 0

    async def open(self) -> "ScratchSession":
        try:
            await aiofiles.os.makedirs(self.docs_json_dir, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to initialize local output: {e}") from e
        return self

    def _unique_name(self, item: PreloadItem) -> str:
        segments = [part for part in item.path.split("/") if part]
        seed = slugify(segments[-1] if segments else url_leaf(item.url) or "doc")
        candidate = seed
        while candidate in self._used_names:
            self._sequence += 1
            candidate = f"{seed}-{self._sequence}"
        self._used_names.add(candidate)
        return candidate

    async def write_doc(self, item: PreloadItem) -> Path:
        """Write one page as JSON; raises :class:`StorageError` on failure."""
        target = self.docs_json_dir / f"{self._unique_name(item)}.json"
        await write_text(target, dump_model(item))
        return target

    async def finalize_jsonl(self) -> Path:
        """Concatenate the page files, in file name order, into ``scraped.jsonl``."""
        try:
            names = sorted(
                name for name in await aiofiles.os.listdir(self.docs_json_dir)
                if name.endswith(".json")
            )
            lines = []
            for name in names:
                data = json.loads(await read_text(self.docs_json_dir / name))
                lines.append(json.dumps(data, ensure_ascii=False, separators=(",", ":")))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to finalize {JSONL_FILE}: {e}") from e

        target = self.directory / JSONL_FILE
        await write_text(target, "\n".join(lines))
        logger.debug("Wrote %d lines to %s", len(lines), target)
        return target
