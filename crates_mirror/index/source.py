#!/usr/bin/env python3

import os
import json
import logging
import subprocess
from typing import Iterator, List

from ..sync.models import PackageRecord, IndexUnavailable

logger = logging.getLogger(__name__)

class GitIndexSource:
    """Package roster backed by a local checkout of the crates.io git index.

    The index stores one file per crate, spread over prefix directories
    (``1/``, ``2/``, ``3/a/``, ``se/rd/``). Each line of a file is the JSON
    description of one published version.
    """

    IGNORED_FILES = {"config.json", "README.md"}

    def __init__(self, index_url: str, cache_path: str):
        self.index_url = index_url
        self.cache_path = cache_path

    def refresh(self) -> None:
        """Bring the local index cache up to date with upstream"""
        if os.path.isdir(os.path.join(self.cache_path, ".git")):
            logger.info(f"Updating crates index in {self.cache_path}")
            self._run_git(["git", "-C", self.cache_path, "fetch", "--depth", "1", "origin"])
            self._run_git(["git", "-C", self.cache_path, "reset", "--hard", "FETCH_HEAD"])
        else:
            logger.info(f"Cloning crates index from {self.index_url}")
            os.makedirs(os.path.dirname(os.path.abspath(self.cache_path)), exist_ok=True)
            self._run_git(["git", "clone", "--depth", "1", self.index_url, self.cache_path])

    def _run_git(self, command: List[str]) -> None:
        try:
            subprocess.run(command, check=True, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise IndexUnavailable(f"git executable not found: {e}") from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            raise IndexUnavailable(
                f"'{' '.join(command)}' exited with {e.returncode}: {stderr}"
            ) from e

    def list(self) -> Iterator[PackageRecord]:
        """Yield every crate in the cached index, in index order"""
        if not os.path.isdir(self.cache_path):
            raise IndexUnavailable(f"Index cache does not exist: {self.cache_path}")

        for dirpath, dirnames, filenames in os.walk(self.cache_path):
            # Sort in place so os.walk descends in a stable order
            dirnames[:] = sorted(d for d in dirnames if not d.startswith('.'))
            is_root = dirpath == self.cache_path

            for filename in sorted(filenames):
                if filename.startswith('.'):
                    continue
                if is_root and filename in self.IGNORED_FILES:
                    continue
                yield PackageRecord(name=self._read_name(os.path.join(dirpath, filename), filename))

    def _read_name(self, file_path: str, fallback: str) -> str:
        """Canonical crate name from the first version entry of an index file"""
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                first_line = f.readline()
            name = json.loads(first_line).get("name")
            if isinstance(name, str) and name:
                return name
        except (OSError, ValueError, AttributeError) as e:
            logger.debug(f"Could not parse index entry {file_path}: {e}")

        return fallback
