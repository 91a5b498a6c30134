#!/usr/bin/env python3

from enum import Enum
from dataclasses import dataclass
from typing import Optional


class SyncStatus(str, Enum):
    PENDING = "pending"
    CLONED = "cloned"
    FAILED = "failed"
    NO_REPO = "no_repo"
    METADATA_ERROR = "metadata_error"

    @classmethod
    def parse(cls, value: str) -> Optional["SyncStatus"]:
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class PackageRecord:
    name: str


@dataclass
class StateEntry:
    name: str
    repository: Optional[str]
    status: SyncStatus


class MirrorError(Exception):
    """Base class for every failure raised by the mirror components"""


class IndexUnavailable(MirrorError):
    """The package index cache could not be obtained or updated"""


class MetadataFetchError(MirrorError):
    """Metadata for a single package could not be retrieved"""

    def __init__(self, name: str, message: str):
        super().__init__(f"{name}: {message}")
        self.name = name


class CloneError(MirrorError):
    """A repository clone failed; the cause is carried only as a message"""

    def __init__(self, url: str, message: str):
        super().__init__(f"{url}: {message}")
        self.url = url


class StateWriteError(MirrorError):
    """A write to the state store was not committed"""
