"""
Session log discovery.

Finds the append-only JSONL session logs written by the assistant under
its projects directory.
"""

import os
from pathlib import Path
from typing import List


def find_log_files(root: Path, extension: str = ".jsonl") -> List[Path]:
    """Recursively find all session log files under a directory.

    Unreadable directories and entries that vanish mid-scan are skipped;
    a partial result is expected on a live log tree.

    Args:
        root: Directory to scan
        extension: File suffix identifying session logs

    Returns:
        Paths of all matching files, in no particular order
    """
    files: List[Path] = []
    pending = [Path(root)]

    while pending:
        directory = pending.pop()
        try:
            entries = list(os.scandir(directory))
        except OSError:
            continue

        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    pending.append(Path(entry.path))
                elif entry.name.endswith(extension) and entry.is_file():
                    files.append(Path(entry.path))
            except OSError:
                continue

    return files
