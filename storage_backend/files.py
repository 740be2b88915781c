"""
File import/export helpers for the two execution environments.

On the server an export is written to the exports directory and an import
reads a local path. On a client an export is handed to a download callback
and an import reads an uploaded file. Each helper rejects the other
environment's inputs.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from storage_backend.errors import UnsupportedEnvironmentError, ValidationError

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"


@dataclass(frozen=True)
class Download:
    file_name: str
    content: str
    media_type: str = JSON_MEDIA_TYPE


class FileTransfer(Protocol):
    """Moves exported JSON out of, and import payloads into, the service."""

    def write_export(self, file_name: str, content: str) -> Any:
        ...

    def read_import(self, source: Any) -> str:
        ...


def validate_file_name(file_name: str) -> str:
    if (
        not file_name
        or file_name in (".", "..")
        or os.path.basename(file_name) != file_name
        or "/" in file_name
        or "\\" in file_name
    ):
        raise ValidationError(f"Invalid export file name: {file_name!r}")
    return file_name


def _is_path(source: Any) -> bool:
    return isinstance(source, (str, os.PathLike))


class ServerFileTransfer:
    def __init__(self, exports_dir: str = "exports"):
        self.exports_dir = exports_dir

    def write_export(self, file_name: str, content: str) -> Path:
        export_dir = Path(self.exports_dir).resolve()
        export_dir.mkdir(parents=True, exist_ok=True)
        file_path = export_dir / validate_file_name(file_name)
        file_path.write_text(content, encoding="utf-8")
        logger.info("Exported data to %s", file_path)
        return file_path

    def read_import(self, source: Any) -> str:
        if not _is_path(source):
            raise UnsupportedEnvironmentError(
                "Server imports read a file path; uploaded files are a client operation"
            )
        file_path = Path(source).resolve()
        if not file_path.is_file():
            raise FileNotFoundError(f"File not found: {file_path}")
        logger.info("Reading import data from %s", file_path)
        return file_path.read_text(encoding="utf-8")


class ClientFileTransfer:
    """
    Client-side transfers: exports become ``Download`` objects handed to
    ``deliver`` (the equivalent of a browser download), imports come from an
    uploaded file object, raw bytes or a JSON string.
    """

    def __init__(self, deliver: Optional[Callable[[Download], None]] = None):
        self.deliver = deliver

    def write_export(self, file_name: str, content: str) -> Download:
        download = Download(validate_file_name(file_name), content)
        if self.deliver is not None:
            self.deliver(download)
        return download

    def read_import(self, source: Any) -> str:
        # A string that is not JSON content is taken to be a path.
        if isinstance(source, os.PathLike) or (
            isinstance(source, str) and not source.lstrip().startswith(("[", "{"))
        ):
            raise UnsupportedEnvironmentError(
                "Reading server file paths is not supported on a client"
            )
        if hasattr(source, "read"):
            source = source.read()
        if isinstance(source, (bytes, bytearray)):
            return bytes(source).decode("utf-8")
        if isinstance(source, str):
            return source
        raise ValidationError(f"Unsupported import source: {type(source).__name__}")
