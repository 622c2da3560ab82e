"""Standard locations a local storage root can be placed under."""

from __future__ import annotations

import tempfile
from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_cache_dir, user_data_dir, user_documents_dir

APP_NAME = "assetnest"

_KINDS = ("documents", "caches", "application_support", "temporary", "shared_container")
_SHARED_PREFIX = "shared:"


@dataclass(frozen=True)
class Directory:
    """A platform directory kind; ``group_name`` is only set for shared containers."""

    kind: str
    group_name: str | None = None

    def __post_init__(self) -> None:
        if self.kind not in _KINDS:
            raise ValueError(f"Unknown directory kind: {self.kind!r}")
        if (self.kind == "shared_container") != bool(self.group_name):
            raise ValueError("A group name is required for, and only for, shared containers")

    @classmethod
    def documents(cls) -> "Directory":
        return cls("documents")

    @classmethod
    def caches(cls) -> "Directory":
        return cls("caches")

    @classmethod
    def application_support(cls) -> "Directory":
        return cls("application_support")

    @classmethod
    def temporary(cls) -> "Directory":
        return cls("temporary")

    @classmethod
    def shared_container(cls, group_name: str) -> "Directory":
        return cls("shared_container", group_name)

    @classmethod
    def parse(cls, value: str) -> "Directory":
        """Parse ``documents``, ``caches``, ``application_support``, ``temporary`` or ``shared:<group>``."""

        text = value.strip()
        if text.lower().startswith(_SHARED_PREFIX):
            return cls.shared_container(text[len(_SHARED_PREFIX):].strip())
        return cls(text.lower().replace("-", "_"))

    @property
    def path_description(self) -> str:
        if self.kind == "shared_container":
            return f"<Shared>/{self.group_name}"
        return {
            "documents": "<User Documents>",
            "caches": "<User Cache>",
            "application_support": "<User Data>",
            "temporary": "<Temp>",
        }[self.kind]

    @property
    def path(self) -> Path:
        if self.kind == "documents":
            return Path(user_documents_dir())
        if self.kind == "caches":
            return Path(user_cache_dir(APP_NAME))
        if self.kind == "application_support":
            support = Path(user_data_dir(APP_NAME))
            support.mkdir(parents=True, exist_ok=True)
            return support
        if self.kind == "temporary":
            return Path(tempfile.gettempdir())
        return Path(user_data_dir(APP_NAME)) / "groups" / str(self.group_name)
