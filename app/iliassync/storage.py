import os
from pathlib import Path
from typing import Set, Union
import logging

import httpx

logger = logging.getLogger(__name__)

if os.name == 'nt':
    INVALID_CHARS = '/\\:<>"|?*'
else:
    INVALID_CHARS = '/\\'

CHUNK_SIZE = 64 * 1024


def file_escape(name: str) -> str:
    """Replace characters that cannot appear in a single path component with '-'."""
    for char in INVALID_CHARS:
        name = name.replace(char, '-')
    return name


def create_dir(path: Path):
    """Create a directory (and missing parents). Existing directories are fine."""
    path.mkdir(parents=True, exist_ok=True)


def count_entries(path: Path) -> int:
    """Number of entries in a directory, 0 if it does not exist."""
    try:
        return sum(1 for _ in path.iterdir())
    except (FileNotFoundError, NotADirectoryError):
        return 0


def unique_file_name(file_name: str, taken: Set[str]) -> str:
    """
    Pick a file name not in `taken` by numbering duplicates (`a.pdf`, `a2.pdf`, `a3.pdf`, ...).

    The chosen name is added to `taken`.
    """
    stem, dot, extension = file_name.rpartition('.')
    candidate = file_name
    i = 1
    while candidate in taken:
        i += 1
        candidate = f"{stem}{i}.{extension}" if dot and stem else f"{file_name}{i}"
    taken.add(candidate)
    return candidate


def wrap_html(body: str) -> str:
    """Wrap a page fragment in a minimal standalone document."""
    return (
        '<!DOCTYPE html>\n<html>\n<head>\n<meta charset="utf-8">\n</head>\n'
        f'<body>\n{body}\n</body>\n</html>\n'
    )


def write_file_data(path: Path, data: Union[str, bytes]):
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(data, str):
        data = data.encode('utf-8')
    with open(path, 'wb') as f:
        f.write(data)


async def write_stream_to_file(path: Path, response: httpx.Response) -> int:
    """
    Stream a response body to disk.

    Args:
        path: Destination file
        response: Response opened with stream=True

    Returns:
        Number of bytes written
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    with open(path, 'wb') as f:
        async for chunk in response.aiter_bytes(CHUNK_SIZE):
            f.write(chunk)
            written += len(chunk)
    logger.debug(f"Wrote {written} bytes to {path}")
    return written
