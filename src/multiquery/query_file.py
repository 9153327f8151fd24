from __future__ import annotations

import codecs
import dataclasses
import pathlib
from typing import List, Optional, Sequence

from multiquery.errors import ConfigurationError, QueryFileError
from multiquery.logger import get_logger
from multiquery.settings import settings

logger = get_logger(__name__)

# Longest BOMs first so UTF-32 LE is not mistaken for UTF-16 LE.
_BOMS = [
    (codecs.BOM_UTF32_LE, "utf-32-le"),
    (codecs.BOM_UTF32_BE, "utf-32-be"),
    (codecs.BOM_UTF8, "utf-8"),
    (codecs.BOM_UTF16_LE, "utf-16-le"),
    (codecs.BOM_UTF16_BE, "utf-16-be"),
]


@dataclasses.dataclass
class PathResolution:
    """How a user-supplied path was resolved, for verbose diagnostics."""
    original: str
    resolved: pathlib.Path
    searched: List[pathlib.Path] = dataclasses.field(default_factory=list)

    @property
    def is_relative(self) -> bool:
        return not pathlib.Path(self.original).expanduser().is_absolute()


def resolve_path(file_path: str, cwd: Optional[pathlib.Path] = None) -> pathlib.Path:
    """Absolute path for ``file_path``; relative paths are taken from ``cwd``."""
    if not file_path or not str(file_path).strip():
        raise ValueError("File path cannot be empty.")
    path = pathlib.Path(file_path).expanduser()
    if not path.is_absolute():
        path = (cwd or pathlib.Path.cwd()) / path
    return path.resolve()


def resolve_query_file(file_path: str, cwd: Optional[pathlib.Path] = None) -> PathResolution:
    """
    Resolves the query file against the working directory.

    Raises:
        QueryFileError: If the file does not exist.
    """
    resolved = resolve_path(file_path, cwd)
    if not resolved.is_file():
        raise QueryFileError(
            f"The query file '{file_path}' was not found.\n"
            f"Resolved path: {resolved}\n"
            f"Current working directory: {cwd or pathlib.Path.cwd()}"
        )
    return PathResolution(original=file_path, resolved=resolved, searched=[resolved])


def resolve_environments_file(
    file_path: str,
    cwd: Optional[pathlib.Path] = None,
    config_dir: Optional[pathlib.Path] = None,
    fallback_names: Sequence[str] = (),
) -> PathResolution:
    """
    Locates the environments file.

    Absolute paths are used as given. Relative names are looked up in the
    working directory first, then in the user config directory. Each
    fallback name is tried in the same locations after ``file_path``.

    Raises:
        ConfigurationError: If no candidate exists.
    """
    path = pathlib.Path(file_path).expanduser()
    if path.is_absolute():
        if not path.is_file():
            raise ConfigurationError(f"The environments file '{file_path}' was not found.")
        return PathResolution(original=file_path, resolved=path.resolve(), searched=[path])

    cwd = cwd or pathlib.Path.cwd()
    config_dir = config_dir or pathlib.Path(settings.user_config_dir).expanduser()

    searched: List[pathlib.Path] = []
    for name in [file_path, *fallback_names]:
        for base in (cwd, config_dir):
            candidate = base / name
            searched.append(candidate)
            if candidate.is_file():
                logger.debug(f"Environments file resolved to {candidate}")
                return PathResolution(original=file_path, resolved=candidate.resolve(), searched=searched)

    locations = "\n".join(f"  {i}. {p}" for i, p in enumerate(searched, start=1))
    raise ConfigurationError(
        f"The environments file '{file_path}' was not found.\n"
        f"Searched locations:\n{locations}"
    )


def decode_query_bytes(data: bytes) -> str:
    """Decodes query file content, honouring a byte-order mark if present."""
    for bom, encoding in _BOMS:
        if data.startswith(bom):
            return data[len(bom):].decode(encoding)
    return data.decode("utf-8")


def read_query_file(path: pathlib.Path) -> str:
    """
    Reads a SQL query file.

    Returns:
        The trimmed query text.

    Raises:
        QueryFileError: If the file is missing, unreadable, undecodable or blank.
    """
    if not path.is_file():
        raise QueryFileError(f"Query file not found: {path}")

    try:
        content = decode_query_bytes(path.read_bytes())
    except (OSError, UnicodeDecodeError) as exc:
        raise QueryFileError(f"Error reading query file '{path}': {exc}") from exc

    if not content.strip():
        raise QueryFileError(f"Query file '{path}' is empty or contains only whitespace")

    return content.strip()
