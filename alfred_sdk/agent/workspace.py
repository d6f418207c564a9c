"""Per-run working directories."""

import asyncio
import logging
import re
import shutil
import tempfile
import time
from pathlib import Path

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_-]")


def create_working_directory(request_id: str, root: str | None = None) -> str:
    """Create ``{root}/{request_id}-{timestamp}-XXXX`` and return its path."""
    root_dir = root or tempfile.gettempdir()
    Path(root_dir).mkdir(parents=True, exist_ok=True)
    prefix = f"{_UNSAFE.sub('_', request_id)}-{int(time.time() * 1000)}-"
    path = tempfile.mkdtemp(prefix=prefix, dir=root_dir)
    logger.debug(f"Created working directory {path}")
    return path


async def cleanup_working_directory(path: str | None) -> bool:
    """Remove a working directory. Failures are logged, never raised."""
    if not path:
        return False
    try:
        await asyncio.to_thread(shutil.rmtree, path)
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Failed to clean up working directory {path}: {e}")
        return False
    logger.debug(f"Removed working directory {path}")
    return True
