"""Runtime support files shipped alongside every built program.

The files listed in ``RUNTIME_FILES`` are copied into the directory the
program's launcher puts on its module search path (the parent of the
directory holding the binary).
"""

from __future__ import annotations

import importlib.resources
import os
import shutil
import uuid
from pathlib import Path

RUNTIME_MODULE = "kiln_runtime"
RUNTIME_FILES = (f"{RUNTIME_MODULE}.py",)


def copy_runtime(destination: str | Path) -> list[Path]:
    """Copy the runtime support files into ``destination``.

    Existing copies are replaced atomically, so a program running from the
    same directory never sees a half-written file. Returns the copied paths.
    """
    destination = Path(destination)
    destination.mkdir(parents=True, exist_ok=True)
    root = importlib.resources.files(__name__)

    copied: list[Path] = []
    for name in RUNTIME_FILES:
        with importlib.resources.as_file(root.joinpath(name)) as source:
            target = destination / name
            partial = destination / f".{name}.{uuid.uuid4().hex}.tmp"
            shutil.copyfile(source, partial)
            os.replace(partial, target)
            copied.append(target)
    return copied
