"""
Work Order Hub - Durable File Storage

Where signed PDFs (and their snippet images) land before a work order is
marked signed. `upload` returns a URL that reviewers can open.
"""

import base64
import binascii
import logging
import re
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Tuple

from . import config

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9._-]+")
_DATA_URL = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<payload>.+)$", re.DOTALL)


def safe_filename(filename: Optional[str], default: str = "signed-work-order.pdf") -> str:
    name = _UNSAFE_FILENAME.sub("_", (filename or "").strip()).strip("._")
    return name or default


def decode_data_url(data_url: Optional[str]) -> Optional[Tuple[str, bytes]]:
    """(mime, bytes) for a base64 data URL, None for anything else."""
    if not data_url:
        return None
    m = _DATA_URL.match(data_url.strip())
    if not m:
        return None
    try:
        return m.group("mime"), base64.b64decode(m.group("payload"), validate=True)
    except (binascii.Error, ValueError):
        return None


class FileStorage(ABC):
    """Durable storage port."""

    @abstractmethod
    async def upload(self, data: bytes, filename: str) -> str:
        """Store bytes, return a retrievable URL. Raises on failure."""


class InMemoryFileStorage(FileStorage):
    """Keeps uploads in a dict. `fail` makes every upload raise."""

    def __init__(self, fail: bool = False):
        self.files: Dict[str, bytes] = {}
        self.fail = fail

    async def upload(self, data, filename):
        if self.fail:
            raise IOError("in-memory storage configured to fail")
        url = f"memory://{uuid.uuid4().hex[:12]}/{safe_filename(filename)}"
        self.files[url] = data
        return url


class LocalFileStorage(FileStorage):
    """
    Files under `<root>/<yyyy-mm>/<id>-<filename>`.

    With a base URL configured the returned URL is `<base_url>/<relative path>`,
    otherwise a file:// URL.
    """

    def __init__(self, root: str = None, base_url: str = None):
        self.root = Path(root or config.STORAGE_DIR).expanduser().resolve()
        self.base_url = (base_url if base_url is not None else config.STORAGE_BASE_URL).rstrip("/")

    async def upload(self, data, filename):
        month = datetime.now(timezone.utc).strftime("%Y-%m")
        relative = Path(month) / f"{uuid.uuid4().hex[:12]}-{safe_filename(filename)}"
        target = self.root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.debug("Stored %d bytes at %s", len(data), target)

        if self.base_url:
            return f"{self.base_url}/{relative.as_posix()}"
        return target.as_uri()
