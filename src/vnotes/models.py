"""Data models for the index document."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

_SLUG_SEPARATORS = re.compile(r"[\s\-_]+")
_SLUG_DROP = re.compile(r"[^a-z0-9\-]")


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


def slugify(title: str) -> str:
    """Deterministic note id for a title.

    ASCII letters and digits are lowercased, runs of whitespace, ``-`` and
    ``_`` collapse to one ``-``, everything else is dropped.
    """
    slug = _SLUG_SEPARATORS.sub("-", title.strip().lower())
    slug = _SLUG_DROP.sub("", slug.encode("ascii", "ignore").decode("ascii"))
    slug = re.sub(r"-{2,}", "-", slug).strip("-")
    return slug or "note"


def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@dataclass
class VersionMeta:
    """Index record for one immutable version file."""

    version: int
    path: str                 # relative to the store root
    hash: str
    created_at: str = ""

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> VersionMeta:
        return cls(
            version=int(d["version"]),
            path=d["path"],
            hash=d.get("hash", ""),
            created_at=d.get("created_at", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "path": self.path,
            "hash": self.hash,
            "created_at": self.created_at,
        }


@dataclass
class Note:
    """Index entry: a note's identity, version history and working-copy state."""

    slug: str
    title: str
    created_at: str = ""
    updated_at: str = ""
    current_version: int = 0           # 0 until the first snapshot
    versions: list[VersionMeta] = field(default_factory=list)
    working_hash: str | None = None

    @property
    def id(self) -> str:
        return self.slug

    @property
    def latest(self) -> VersionMeta | None:
        for meta in reversed(self.versions):
            if meta.version == self.current_version:
                return meta
        return self.versions[-1] if self.versions else None

    def get_version(self, number: int) -> VersionMeta | None:
        for meta in self.versions:
            if meta.version == number:
                return meta
        return None

    def record_version(self, meta: VersionMeta) -> None:
        """Advance the latest-version pointer to a freshly written version."""
        self.versions.append(meta)
        self.current_version = meta.version
        self.updated_at = meta.created_at or now_iso()
        self.working_hash = meta.hash

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Note:
        versions = sorted(
            (VersionMeta.from_dict(v) for v in d.get("versions", [])),
            key=lambda v: v.version,
        )
        return cls(
            slug=d["slug"],
            title=d.get("title", d["slug"]),
            created_at=d.get("created_at", ""),
            updated_at=d.get("updated_at", ""),
            current_version=int(d.get("current_version", 0)),
            versions=versions,
            working_hash=d.get("working_hash"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "slug": self.slug,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "current_version": self.current_version,
            "versions": [v.to_dict() for v in self.versions],
            "working_hash": self.working_hash,
        }
