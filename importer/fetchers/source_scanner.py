"""
Source repository scanner.

Acquisition strategy for imports from a source repository instead of a live
site: shallow-clone the repository, walk its files and hand each relevant
file to the crawl engine keyed by its repository-relative path.

Page components (component files below a ``pages/`` directory) are what
rule generation analyses; every other accepted file is staged as context.
"""

import asyncio
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import List, Optional

from django.conf import settings

from importer.exceptions import SourceScanError

logger = logging.getLogger(__name__)


@dataclass
class SourceFile:
    """One file read from the repository."""

    path: str
    content: str
    is_page: bool = False


class SourceRepositoryScanner:
    """
    Clones a repository and lists its source files.

    Usage:
        async with SourceRepositoryScanner() as scanner:
            root = await scanner.checkout(repo_url)
            files = scanner.scan(root)
    """

    SKIP_DIRS = {"node_modules", ".git", "dist", "build"}
    EXTENSIONS = {".tsx", ".jsx", ".js", ".ts", ".json", ".css", ".html"}
    PAGE_EXTENSIONS = {".tsx", ".jsx"}
    MAX_FILE_BYTES = 512 * 1024

    def __init__(self, workdir: Optional[str] = None, clone_timeout: Optional[float] = None):
        self.workdir = workdir or getattr(settings, "IMPORTER_REPO_WORKDIR", None)
        self.clone_timeout = clone_timeout or getattr(settings, "IMPORTER_CLONE_TIMEOUT", 120)
        self._checkout_dir: Optional[str] = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()

    async def checkout(self, repo_url: str) -> Path:
        """
        Return a local directory holding the repository.

        Local directories are scanned in place; anything else is cloned
        with ``git clone --depth 1`` into a temporary directory.

        Raises:
            SourceScanError: clone failed or timed out
        """
        local = Path(repo_url).expanduser()
        if local.is_dir():
            return local

        if self.workdir:
            os.makedirs(self.workdir, exist_ok=True)
        self._checkout_dir = tempfile.mkdtemp(prefix="import-", dir=self.workdir)
        target = Path(self._checkout_dir) / "repo"

        logger.info(f"Cloning {repo_url} into {target}")
        process = await asyncio.create_subprocess_exec(
            "git", "clone", "--depth", "1", repo_url, str(target),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.clone_timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise SourceScanError(f"Timed out cloning {repo_url}")

        if process.returncode != 0:
            raise SourceScanError(
                f"git clone failed for {repo_url}: {stderr.decode(errors='replace').strip()}"
            )
        return target

    def scan(self, root: Path) -> List[SourceFile]:
        """List accepted files below root, sorted by relative path."""
        files: List[SourceFile] = []

        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in self.SKIP_DIRS)

            for filename in sorted(filenames):
                full_path = Path(dirpath) / filename
                if full_path.suffix.lower() not in self.EXTENSIONS:
                    continue
                if full_path.stat().st_size > self.MAX_FILE_BYTES:
                    logger.debug(f"Skipping oversized file {full_path}")
                    continue

                relative = full_path.relative_to(root).as_posix()
                try:
                    content = full_path.read_text(encoding="utf-8")
                except UnicodeDecodeError:
                    logger.debug(f"Skipping non-UTF-8 file {relative}")
                    continue

                files.append(
                    SourceFile(
                        path=relative,
                        content=content,
                        is_page=self.is_page_component(relative),
                    )
                )

        files.sort(key=lambda f: f.path)
        logger.info(f"Scanned {len(files)} source files under {root}")
        return files

    @classmethod
    def is_page_component(cls, relative_path: str) -> bool:
        path = PurePosixPath(relative_path)
        return path.suffix.lower() in cls.PAGE_EXTENSIONS and "pages" in path.parts[:-1]

    def cleanup(self):
        if self._checkout_dir:
            shutil.rmtree(self._checkout_dir, ignore_errors=True)
            self._checkout_dir = None
