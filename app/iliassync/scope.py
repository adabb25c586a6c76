from pathlib import Path
from typing import List, NamedTuple, Optional, Union
import logging

from pathspec import GitIgnoreSpec

import settings

logger = logging.getLogger(__name__)


class IgnoreFile(NamedTuple):
    """Patterns of one ignore file plus the path from its directory down to the sync target."""
    spec: GitIgnoreSpec
    prefix: str


def load_ignore_file(path: Path) -> Optional[GitIgnoreSpec]:
    """
    Load one ignore file.

    Args:
        path: Ignore file location

    Returns:
        Parsed pattern set, or None if the file is missing, empty or malformed
    """
    if not path.is_file():
        return None

    try:
        lines = path.read_text(encoding='utf-8').splitlines()
        spec = GitIgnoreSpec.from_lines(lines)
    except (OSError, UnicodeDecodeError, ValueError) as e:
        logger.warning(f"Ignoring malformed ignore file {path}: {e}")
        return None

    if not any(pattern.include is not None for pattern in spec.patterns):
        return None
    return spec


def match_verdict(spec: GitIgnoreSpec, path: str) -> Optional[bool]:
    """
    Evaluate gitignore semantics for a single pattern set.

    Later patterns override earlier ones.

    Returns:
        True if the path is ignored, False if a negated pattern re-includes it,
        None if no pattern matches
    """
    verdict = None
    for pattern in spec.patterns:
        if pattern.include is None:
            continue
        if pattern.match_file(path):
            verdict = pattern.include
    return verdict


class IgnoreRules:
    """
    Layered ignore patterns for a sync target.

    The sync target and every ancestor directory may carry an ignore file.
    Files are consulted from the most specific (the target itself) to the least
    specific; the first one with a verdict decides.

    Example, target = /KIT/ILIAS/SS 23/NGI:
        /KIT/ILIAS/SS 23/NGI/.iliasignore  prefix ""
        /KIT/ILIAS/.iliasignore            prefix "SS 23/NGI/"
    """

    def __init__(self, ignores: Optional[List[IgnoreFile]] = None):
        self.ignores: List[IgnoreFile] = ignores or []

    @classmethod
    def load(cls, target: Union[str, Path], file_name: Optional[str] = None) -> 'IgnoreRules':
        """
        Walk from the sync target up to the filesystem root collecting ignore files.

        Args:
            target: Sync target directory
            file_name: Ignore file name (defaults to settings.IGNORE_FILE_NAME)
        """
        file_name = file_name or settings.IGNORE_FILE_NAME
        directory = Path(target).resolve()
        ignores = []
        prefix: List[str] = []

        while True:
            spec = load_ignore_file(directory / file_name)
            if spec is not None:
                joined = ''.join(f"{part}/" for part in prefix)
                ignores.append(IgnoreFile(spec, joined))
                logger.debug(f"Loaded {directory / file_name} with prefix {joined!r}")

            # stop at the root (or a drive / UNC anchor)
            if directory.parent == directory or not directory.name:
                break
            prefix.insert(0, directory.name)
            directory = directory.parent

        return cls(ignores)

    def should_ignore(self, relative_path: Union[str, Path], is_dir: bool) -> bool:
        """
        Check whether a path below the sync target is out of scope.

        Args:
            relative_path: Path relative to the sync target
            is_dir: Whether the path denotes a directory

        Returns:
            True if the path is ignored
        """
        path = Path(relative_path).as_posix() if relative_path else ''
        if path in ('', '.'):
            return False

        for ignore_file in self.ignores:
            full_path = ignore_file.prefix + path
            if is_dir:
                full_path += '/'
            verdict = match_verdict(ignore_file.spec, full_path)
            if verdict is False:
                return False
            if verdict is True:
                return True

        return False

    def __len__(self) -> int:
        return len(self.ignores)
