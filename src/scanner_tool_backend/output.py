"""
Output location resolution and host file launching.

These are the filesystem-facing collaborators of the scanner service: one
resolves (and creates) the directory scan files are written to, the other asks
the host desktop to open a file or folder.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Union

from omegaconf import DictConfig

from .errors import IOFailureError, NotFoundError
from .models import SystemType
from .utils import ensure_directory

logger = logging.getLogger(__name__)


def resolve_output_directory(config: DictConfig) -> Path:
    """
    Resolve the scan output directory and make sure it exists.

    ``output.root`` defaults to the user's Documents folder; ``output.directory_name``
    is appended to it.

    Raises:
        IOFailureError: If the directory cannot be created
    """
    root = Path(config.output.root).expanduser() if config.output.root else Path.home() / "Documents"
    directory_name = config.output.directory_name or ""
    return ensure_directory(root / directory_name)


def _open_command(path: Path, system_type: SystemType) -> List[str]:
    if system_type == SystemType.MACOS:
        return ["open", str(path)]
    if system_type == SystemType.WINDOWS:
        if path.is_dir():
            return ["explorer", str(path)]
        return ["cmd", "/c", "start", "", str(path)]
    return ["xdg-open", str(path)]


def open_path(path: Union[str, Path], system_type: SystemType) -> None:
    """
    Open a file or directory with the host's default application.

    Fire-and-forget: the viewer process is spawned and not waited on.

    Raises:
        NotFoundError: If ``path`` does not exist
        IOFailureError: If the launcher could not be spawned
    """
    target = Path(path)
    if not target.exists():
        raise NotFoundError("File", str(target))

    command = _open_command(target, system_type)
    logger.info(f"Opening {target} with {command[0]}")
    try:
        subprocess.Popen(command, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except OSError as exc:
        raise IOFailureError(f"Failed to open {target}: {exc}") from exc
