"""Staging pipeline turning an uploaded bundle into a static site directory."""

import base64
import binascii
import html
import json
import shutil
import threading
import zipfile
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

from static_deployer.core.exceptions import (
    DecodeFailedError,
    ExtractFailedError,
    UploadTooLargeError,
    WriteFailedError,
)
from static_deployer.core.models import StagedSite

logger = structlog.get_logger()

ENTRY_DOCUMENT = "index.html"
CONFIG_DOCUMENT = "vercel.json"
ARCHIVE_SUFFIX = ".zip"
HTML_SUFFIX = ".html"

DEFAULT_ENTRY_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <title>{name}</title>
    <style>
        body {{
            font-family: Arial, sans-serif;
            margin: 40px;
            background: #f0f0f0;
        }}
        .container {{
            max-width: 800px;
            margin: 0 auto;
            background: white;
            padding: 20px;
            border-radius: 10px;
        }}
        h1 {{ color: #333; }}
    </style>
</head>
<body>
    <div class="container">
        <h1>{name}</h1>
        <p>This website was deployed with Static Deployer</p>
    </div>
</body>
</html>
"""


def render_default_entry(name: str) -> str:
    """Minimal landing page used when the upload contains no HTML."""
    return DEFAULT_ENTRY_TEMPLATE.format(name=html.escape(name))


def build_deploy_config(name: str) -> Dict[str, Any]:
    """Deployment config: static build for all HTML, catch-all route."""
    return {
        "name": name,
        "version": 2,
        "builds": [
            {
                "src": "*.html",
                "use": "@vercel/static",
            }
        ],
        "routes": [
            {
                "src": "/(.*)",
                "dest": "/$1",
            }
        ],
    }


def _contained(base: Path, target: Path) -> bool:
    return target == base or base in target.parents


def _check_cancelled(cancelled: Optional[threading.Event]) -> None:
    if cancelled is not None and cancelled.is_set():
        raise ExtractFailedError("Staging cancelled")


class StagingPipeline:
    """Materializes uploads into per-deployment staging directories."""

    def __init__(
        self,
        staging_root: Path,
        max_upload_bytes: int = 50 * 1024 * 1024,
        max_extracted_bytes: int = 200 * 1024 * 1024,
    ):
        """Initialize staging pipeline.

        Args:
            staging_root: Directory under which each deployment gets ``<name>/``
            max_upload_bytes: Largest accepted decoded upload
            max_extracted_bytes: Largest accepted total uncompressed archive size
        """
        self.staging_root = Path(staging_root)
        self.max_upload_bytes = max_upload_bytes
        self.max_extracted_bytes = max_extracted_bytes

    def directory_for(self, name: str) -> Path:
        """Staging directory for deployment ``name``.

        Raises:
            WriteFailedError: If ``name`` would escape the staging root
        """
        base = self.staging_root.resolve()
        target = (base / name).resolve()
        if target == base or base not in target.parents:
            raise WriteFailedError(f"Deployment name escapes staging directory: {name!r}")
        return target

    def stage(
        self,
        name: str,
        file_data: str,
        file_name: str,
        cancelled: Optional[threading.Event] = None,
    ) -> StagedSite:
        """Stage an upload.

        Args:
            name: Deployment name, also the staging directory name
            file_data: Base64 encoded file contents
            file_name: Declared file name of the upload
            cancelled: Set by the caller to stop staging between steps

        Returns:
            The staged site

        Raises:
            UploadTooLargeError: If the decoded upload exceeds the limit
            DecodeFailedError: If ``file_data`` is not valid base64
            ExtractFailedError: If the archive is corrupt or unsafe
            WriteFailedError: If files cannot be written
        """
        logger.info("Staging upload", name=name, file_name=file_name)

        buffer = self._decode(file_data)
        _check_cancelled(cancelled)
        site_dir = self.directory_for(name)

        try:
            site_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WriteFailedError(f"Failed to create staging directory: {e}") from e

        upload_path = self._write_upload(site_dir, file_name, buffer)
        _check_cancelled(cancelled)

        if file_name.lower().endswith(ARCHIVE_SUFFIX):
            self._extract_archive(upload_path, site_dir)
            try:
                upload_path.unlink()
            except OSError as e:
                raise WriteFailedError(f"Failed to remove archive after extraction: {e}") from e
            _check_cancelled(cancelled)

        try:
            config_path = site_dir / CONFIG_DOCUMENT
            config_path.write_text(json.dumps(build_deploy_config(name), indent=2), encoding="utf-8")
            entry_source, synthesized = self._ensure_entry_document(site_dir, name)
        except OSError as e:
            raise WriteFailedError(f"Failed to write site files: {e}") from e

        files = sorted(str(p.relative_to(site_dir)) for p in site_dir.rglob("*") if p.is_file())
        logger.info(
            "Upload staged",
            name=name,
            path=str(site_dir),
            files=len(files),
            entry_source=entry_source,
            entry_synthesized=synthesized,
        )
        return StagedSite(
            name=name,
            path=site_dir,
            entry_source=entry_source,
            entry_synthesized=synthesized,
            files=files,
        )

    def _decode(self, file_data: str) -> bytes:
        compact = "".join(file_data.split())
        # Refuse before decoding if the encoded form alone is too big
        if len(compact) > 4 * -(-self.max_upload_bytes // 3):
            raise UploadTooLargeError(f"Upload exceeds {self.max_upload_bytes} bytes")
        try:
            buffer = base64.b64decode(compact, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodeFailedError(f"File data is not valid base64: {e}") from e
        if len(buffer) > self.max_upload_bytes:
            raise UploadTooLargeError(f"Upload exceeds {self.max_upload_bytes} bytes")
        return buffer

    def _write_upload(self, site_dir: Path, file_name: str, buffer: bytes) -> Path:
        target = (site_dir / file_name).resolve()
        if target == site_dir or not _contained(site_dir, target):
            raise WriteFailedError(f"File name escapes staging directory: {file_name!r}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(buffer)
        except OSError as e:
            raise WriteFailedError(f"Failed to write upload: {e}") from e
        return target

    def _extract_archive(self, archive_path: Path, dest_dir: Path) -> None:
        """Extract every archive entry into ``dest_dir``, overwriting files.

        Raises ExtractFailedError on corrupt archives, zip-slip entries and
        archives whose uncompressed size exceeds the limit.
        """
        base = dest_dir.resolve()
        try:
            with zipfile.ZipFile(archive_path, "r") as zf:
                members = zf.infolist()
                total = sum(member.file_size for member in members)
                if total > self.max_extracted_bytes:
                    raise ExtractFailedError(
                        f"Archive expands to {total} bytes, limit is {self.max_extracted_bytes}"
                    )
                for member in members:
                    member_path = Path(member.filename)
                    if member_path.is_absolute() or ".." in member_path.parts:
                        raise ExtractFailedError(f"Archive contains unsafe path: {member.filename}")
                    target = (base / member_path).resolve()
                    if not _contained(base, target):
                        raise ExtractFailedError(f"Archive entry escapes destination: {member.filename}")
                    if member.is_dir():
                        target.mkdir(parents=True, exist_ok=True)
                    else:
                        target.parent.mkdir(parents=True, exist_ok=True)
                        with zf.open(member, "r") as src, open(target, "wb") as dst:
                            shutil.copyfileobj(src, dst)
        except ExtractFailedError:
            raise
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, RuntimeError, EOFError) as e:
            raise ExtractFailedError(f"Failed to extract archive: {e}") from e

        logger.info("Archive extracted", archive=archive_path.name, entries=len(members))

    def _ensure_entry_document(self, site_dir: Path, name: str) -> tuple[Optional[str], bool]:
        """Make sure ``index.html`` exists at the top of ``site_dir``.

        Returns:
            (name of the HTML file promoted to index.html or None, whether a default was written)
        """
        entry_path = site_dir / ENTRY_DOCUMENT
        if entry_path.exists():
            return None, False

        candidates = sorted(
            p for p in site_dir.iterdir()
            if p.is_file() and p.name.lower().endswith(HTML_SUFFIX)
        )
        if candidates:
            source = candidates[0]
            source.rename(entry_path)
            logger.debug("Promoted HTML file to entry document", source=source.name)
            return source.name, False

        entry_path.write_text(render_default_entry(name), encoding="utf-8")
        logger.debug("Synthesized default entry document", name=name)
        return None, True
