# enginecalc/io/library_store.py
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from enginecalc.core import ComputedChannelLibrary, LibraryError
from enginecalc.io.paths import config_dir

logger = logging.getLogger(__name__)

LIBRARY_FILENAME = "computed_channels.json"


def library_path(directory: str | Path | None = None) -> Path:
    """Path of the library file inside `directory` (default: the user config dir)."""
    base = Path(directory) if directory is not None else config_dir()
    return base / LIBRARY_FILENAME


def load_library(path: str | Path | None = None) -> ComputedChannelLibrary:
    """
    Load the template library.

    A missing file gives an empty library. An unreadable or corrupt file is
    logged and also gives an empty library: a broken library must never
    prevent the application from starting.
    """
    p = Path(path) if path is not None else library_path()

    if not p.exists():
        logger.info("Computed channels library not found at %s, using empty library", p)
        return ComputedChannelLibrary.new()

    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
        library = ComputedChannelLibrary.from_dict(raw)
    except OSError as e:
        logger.warning("Failed to read computed channels library %s: %s", p, e)
        return ComputedChannelLibrary.new()
    except (ValueError, TypeError, OverflowError, RecursionError) as e:
        logger.warning("Failed to parse computed channels library %s: %s", p, e)
        return ComputedChannelLibrary.new()

    logger.info("Loaded %d computed channel templates from %s", len(library), p)
    return library


def save_library(library: ComputedChannelLibrary, path: str | Path | None = None) -> Path:
    """
    Write the whole library to `path` (default: :func:`library_path`).

    Parent directories are created. The document is written to a temporary
    file next to the target and then moved over it, so an interrupted save
    leaves the previous file intact. Raises LibraryError on failure; the
    in-memory library is never modified.
    """
    p = Path(path) if path is not None else library_path()

    try:
        p.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise LibraryError(f"Failed to create config directory {p.parent}: {e}") from e

    content = json.dumps(library.to_dict(), indent=2)

    tmp_name: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=p.parent,
            prefix=f".{p.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, p)
    except OSError as e:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise LibraryError(f"Failed to write library file {p}: {e}") from e

    logger.info("Saved computed channels library to %s", p)
    return p
