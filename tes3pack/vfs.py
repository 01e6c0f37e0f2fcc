"""Game file lookup across loose data directories and BSA archives."""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Iterable

from tes3pack.bsa.reader import BSAReader, normalize_name

logger = logging.getLogger(__name__)


class DataFiles:
    """Resolves game-relative paths the way the engine does.

    ``data_dirs`` and ``archives`` are in ascending priority: the last
    directory containing a loose file wins, and archives are only consulted
    when no loose file exists. Each archive index is read on first use and
    kept for the life of this object.
    """

    def __init__(self, data_dirs: Iterable[Path] = (), archives: Iterable[Path] = ()):
        self.data_dirs = [Path(d) for d in data_dirs]
        self.archives = [Path(a) for a in archives]
        self._indices: dict[Path, BSAReader] = {}
        self._lock = threading.Lock()

    def _archive(self, path: Path) -> BSAReader:
        with self._lock:
            reader = self._indices.get(path)
            if reader is None:
                reader = BSAReader(path)
                self._indices[path] = reader
            return reader

    def find_loose(self, name: str) -> Path | None:
        rel = Path(*normalize_name(name).split("/"))
        for data_dir in reversed(self.data_dirs):
            candidate = data_dir / rel
            if candidate.is_file():
                return candidate
            # Loose files on case-sensitive filesystems keep their original case
            match = _find_case_insensitive(data_dir, rel)
            if match is not None:
                return match
        return None

    def read_file(self, name: str) -> bytes:
        """Bytes of ``name`` (e.g. ``textures/tx_sky.dds``) from the highest priority source."""
        loose = self.find_loose(name)
        if loose is not None:
            logger.debug("%s: loose file %s", name, loose)
            return loose.read_bytes()
        for archive in reversed(self.archives):
            reader = self._archive(archive)
            entry = reader.get(name)
            if entry is not None:
                logger.debug("%s: found in %s", name, archive)
                return reader.extract_file(entry)
        raise FileNotFoundError(f"{name!r} not found in any data directory or archive")


def _find_case_insensitive(root: Path, rel: Path) -> Path | None:
    current = root
    for part in rel.parts:
        if not current.is_dir():
            return None
        lowered = part.lower()
        for child in current.iterdir():
            if child.name.lower() == lowered:
                current = child
                break
        else:
            return None
    return current if current.is_file() else None
