"""Module archive export and import."""

from __future__ import annotations

from dataclasses import dataclass
import io
from pathlib import Path
from posixpath import normpath
import re
import zipfile
from typing import Mapping

from modforge.state import GenerationStatus, ResultState
from modforge.util.logging import get_logger

logger = get_logger("modforge.archive")

_DISPLAY_NAME_RE = re.compile(r"<displayName><!\[CDATA\[(.*?)\]\]></displayName>", re.DOTALL)
_DESCRIPTION_RE = re.compile(r"<description><!\[CDATA\[(.*?)\]\]></description>", re.DOTALL)


class ArchiveError(ValueError):
    """Raised when artifacts cannot be exported or imported."""


@dataclass
class ImportedModule:
    name: str
    description: str
    state: ResultState


def is_safe_relative_path(path: str) -> bool:
    if not path or path.startswith(("/", "\\")) or ":" in path:
        return False
    parts = Path(path).parts
    if any(part == ".." for part in parts):
        return False
    return True


def _checked_path(path: str) -> str:
    if not is_safe_relative_path(path):
        raise ArchiveError(f"Unsafe artifact path: {path!r}")
    return normpath(path)


def build_zip(artifacts: Mapping[str, str]) -> bytes:
    """Return a zip archive holding every artifact at its path."""
    if not artifacts:
        raise ArchiveError("No files have been generated for this module yet.")
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for path in sorted(artifacts):
            archive.writestr(_checked_path(path), artifacts[path])
    return buffer.getvalue()


def write_zip(artifacts: Mapping[str, str], output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(build_zip(artifacts))
    logger.info("Wrote %d files to %s", len(artifacts), output_path)
    return output_path


def write_artifacts(artifacts: Mapping[str, str], directory: Path) -> list[Path]:
    """Write artifacts below ``directory``, refusing paths that escape it."""
    root = directory.resolve()
    written: list[Path] = []
    for path, content in artifacts.items():
        target = (root / _checked_path(path)).resolve()
        if root not in target.parents:
            raise ArchiveError(f"Path traversal blocked: {path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        written.append(target)
    logger.info("Wrote %d files under %s", len(written), root)
    return written


def load_module_zip(zip_path: Path) -> ImportedModule:
    """Read a module archive back into a completed result."""
    name = zip_path.name
    if name.endswith(".zip"):
        name = name[: -len(".zip")]
    description = f"Module uploaded from {zip_path.name}"
    files: dict[str, str] = {}
    try:
        with zipfile.ZipFile(zip_path) as archive:
            for info in archive.infolist():
                if info.is_dir():
                    continue
                files[info.filename] = archive.read(info).decode("utf-8", errors="replace")
    except zipfile.BadZipFile as exc:
        raise ArchiveError(f"Not a zip archive: {zip_path}") from exc
    except OSError as exc:
        raise ArchiveError(f"Cannot read module archive {zip_path}: {exc}") from exc
    config = next((content for path, content in files.items() if path.endswith("config.xml")), "")
    if config:
        name_match = _DISPLAY_NAME_RE.search(config)
        description_match = _DESCRIPTION_RE.search(config)
        if name_match and name_match.group(1):
            name = name_match.group(1)
        if description_match and description_match.group(1):
            description = description_match.group(1)
    state = ResultState(
        artifacts=files,
        status=GenerationStatus.COMPLETED,
        completion_message=f"Successfully imported module from {zip_path.name}.",
    )
    return ImportedModule(name=name, description=description, state=state)
