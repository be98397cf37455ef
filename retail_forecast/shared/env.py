"""Environment utilities for Docker-style ``*_FILE`` secrets."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)

_SUFFIX = "_FILE"


def load_secret_file_variables() -> List[str]:
    """
    Expose the content of every ``KEY_FILE`` variable as ``KEY``.

    Variables that are already set win over their file counterpart. Files
    that cannot be read are reported and skipped.

    Returns:
        Names of the variables that were populated.
    """
    resolved: List[str] = []
    for key, file_path in list(os.environ.items()):
        if not key.endswith(_SUFFIX) or not file_path:
            continue
        target_key = key[: -len(_SUFFIX)]
        if os.environ.get(target_key):
            continue
        try:
            os.environ[target_key] = Path(file_path).read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning(
                "env.secret_file.unreadable",
                extra={"key": key, "path": file_path, "error": str(exc)},
            )
            continue
        resolved.append(target_key)
    return resolved


load_secret_file_variables()
