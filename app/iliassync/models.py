from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

import settings


class Locator(BaseModel):
    """Parsed form of a discovered link, keeping only the query parameters the site routes on."""
    model_config = ConfigDict(frozen=True)

    raw: str
    base_class: Optional[str] = None
    cmd_class: Optional[str] = None
    cmd_node: Optional[str] = None
    cmd: Optional[str] = None
    forward_cmd: Optional[str] = None
    thr_pk: Optional[str] = None
    pos_pk: Optional[str] = None
    ref_id: str = ""
    target: Optional[str] = None
    file: Optional[str] = None


class FileMetadataHint(BaseModel):
    """Extension and version text found next to a file link in a container listing."""
    model_config = ConfigDict(frozen=True)

    extension: str
    version: str = ""


class ResourceKind(str, Enum):
    """Closed set of resource kinds; the value is the tag used in log lines."""
    COURSE = "course"
    FOLDER = "folder"
    PERSONAL_DESKTOP = "personal desktop"
    FILE = "file"
    FORUM = "forum"
    THREAD = "thread"
    WIKI = "wiki"
    EXERCISE_HANDLER = "exercise handler"
    WEBLINK = "weblink"
    SURVEY = "survey"
    PRESENTATION = "presentation"
    PLUGIN_DISPATCH = "plugin dispatch"
    VIDEO = "video"
    GENERIC = "generic"


CONTAINER_KINDS = frozenset({
    ResourceKind.COURSE,
    ResourceKind.FOLDER,
    ResourceKind.PERSONAL_DESKTOP,
    ResourceKind.FORUM,
    ResourceKind.THREAD,
    ResourceKind.EXERCISE_HANDLER,
    ResourceKind.PLUGIN_DISPATCH,
})

# kinds whose display name is derived from the locator instead of the link text
UNNAMED_KINDS = frozenset({
    ResourceKind.PERSONAL_DESKTOP,
    ResourceKind.THREAD,
    ResourceKind.VIDEO,
})


class Resource(BaseModel):
    """A classified, immutable handle to one entity of the remote tree."""
    model_config = ConfigDict(frozen=True)

    kind: ResourceKind
    locator: Locator
    label: Optional[str] = None

    @classmethod
    def of(cls, kind: ResourceKind, locator: Locator, name: str = "") -> 'Resource':
        """Build a resource, dropping the link text for kinds that derive their name."""
        label = None if kind in UNNAMED_KINDS else name
        return cls(kind=kind, locator=locator, label=label)

    @property
    def name(self) -> str:
        if self.kind == ResourceKind.THREAD:
            return self.locator.thr_pk or ""
        if self.kind == ResourceKind.VIDEO:
            return self.locator.raw
        return self.label or ""

    @property
    def is_container(self) -> bool:
        return self.kind in CONTAINER_KINDS

    def __str__(self) -> str:
        return f"{self.kind.value} {self.locator.raw}"


class UnitState(str, Enum):
    """Lifecycle of one scheduled unit"""
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncOptions(BaseModel):
    """Configuration of one sync run"""
    output: Path
    jobs: int = Field(default=settings.SYNC_DEFAULT_JOBS, ge=1)
    rate: float = Field(default=settings.SYNC_DEFAULT_RATE, gt=0)
    force: bool = False
    skip_files: bool = False
    no_videos: bool = False
    forum: bool = False
    check_videos: bool = False
    save_ilias_pages: bool = False
    sync_url: Optional[str] = None
    proxy: Optional[str] = None
    keep_session: bool = False

    @field_validator('output')
    def output_must_not_be_a_file(cls, v):
        if v.exists() and not v.is_dir():
            raise ValueError(f"output {v} exists and is not a directory")
        return v
