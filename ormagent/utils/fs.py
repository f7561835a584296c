from pathlib import Path
from typing import Callable, Optional


def list_file_names(dir_path: Path, accepts: Callable[[str], bool]) -> list[str]:
    """Names of the entries in ``dir_path`` accepted by the filter, sorted."""
    return sorted(entry.name for entry in Path(dir_path).iterdir() if accepts(entry.name))


def find_line(path: Path, accepts: Callable[[str], bool]) -> Optional[str]:
    """First line of the text file at ``path`` accepted by the filter.

    Lines are passed without their trailing newline. Raises ``OSError`` when
    the file cannot be read and ``UnicodeDecodeError`` when it is not UTF-8.
    """
    with open(path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.rstrip("\r\n")
            if accepts(line):
                return line
    return None
