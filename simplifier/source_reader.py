"""
Source Reader

Expands CLI paths into the ordered (path, source) pairs the engine consumes.

Guards:
  • Skips binary files (null-byte check)
  • Caps reads at MAX_LINES to prevent memory issues
  • Skips dependency and build directories when walking a tree
"""

import os
import logging
from typing import Iterable, List, Optional, Tuple

from simplifier.js_parser import SOURCE_EXTENSIONS

logger = logging.getLogger(__name__)

MAX_LINES = 100_000  # safety cap for very large files

SKIP_DIRS = frozenset({"node_modules", ".git", "dist", "build", "coverage", ".next", "__pycache__"})


def discover_sources(paths: Iterable[str]) -> List[str]:
    """Files named directly are kept as given; directories are walked for
    JavaScript/TypeScript sources in sorted order.  Duplicates are dropped."""
    found: List[str] = []
    seen = set()

    def _add(path: str):
        key = os.path.normpath(path)
        if key not in seen:
            seen.add(key)
            found.append(path)

    for path in paths:
        if os.path.isdir(path):
            for root, dirs, files in os.walk(path):
                dirs[:] = sorted(d for d in dirs if d not in SKIP_DIRS and not d.startswith("."))
                for name in sorted(files):
                    if name.endswith(".d.ts"):
                        continue
                    if os.path.splitext(name)[1].lower() in SOURCE_EXTENSIONS:
                        _add(os.path.join(root, name))
        else:
            _add(path)
    return found


def read_source(file_path: str) -> Optional[bytes]:
    """Read a file with binary-file guard and line cap.  None when unreadable."""
    if not os.path.isfile(file_path):
        logger.error("File not found: %s", file_path)
        return None
    try:
        with open(file_path, "rb") as fb:
            head = fb.read(8192)
            if b"\x00" in head:
                logger.warning("Skipping binary file: %s", file_path)
                return None
            data = head + fb.read()
    except OSError as e:
        logger.error("Error reading %s: %s", file_path, e)
        return None

    if data.count(b"\n") >= MAX_LINES:
        logger.warning("File %s exceeds %d lines, skipping", file_path, MAX_LINES)
        return None
    return data


def load_sources(paths: Iterable[str]) -> Tuple[List[Tuple[str, bytes]], List[str]]:
    """Returns (pairs, unreadable_paths)."""
    pairs: List[Tuple[str, bytes]] = []
    unreadable: List[str] = []
    for path in discover_sources(paths):
        data = read_source(path)
        if data is None:
            unreadable.append(path)
        else:
            pairs.append((path, data))
    return pairs, unreadable
