"""Repository (QRS) and proxy (QPS) response shapes."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .errors import QlikDecodeError


def _mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise QlikDecodeError(f"Expected a JSON object for {what}, got {type(data).__name__}")
    return data


@dataclass(frozen=True, slots=True)
class About:
    """Server build information from /qrs/about."""

    build_version: str = ""
    build_date: str = ""
    database_provider: str = ""
    node_type: int = 0
    schema_path: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> About:
        data = _mapping(data, "about")
        return cls(
            build_version=data.get("buildVersion", ""),
            build_date=data.get("buildDate", ""),
            database_provider=data.get("databaseProvider", ""),
            node_type=data.get("nodeType", 0),
            schema_path=data.get("schemaPath", ""),
        )


@dataclass(frozen=True, slots=True)
class Owner:
    user_id: str = ""
    user_directory: str = ""
    name: str = ""
    id: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Owner:
        data = _mapping(data, "owner")
        return cls(
            user_id=data.get("userId", ""),
            user_directory=data.get("userDirectory", ""),
            name=data.get("name", ""),
            id=data.get("id", ""),
        )


@dataclass(frozen=True, slots=True)
class Stream:
    name: str = ""
    id: str = ""
    privileges: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Stream:
        data = _mapping(data, "stream")
        return cls(
            name=data.get("name", ""),
            id=data.get("id", ""),
            privileges=data.get("privileges"),
        )


@dataclass(frozen=True, slots=True)
class ApplicationResult:
    """An app entity as returned by list, copy and publish."""

    id: str = ""
    name: str = ""
    app_id: str = ""
    created_date: str = ""
    modified_date: str = ""
    modified_by_user_name: str = ""
    owner: Owner | None = None
    publish_time: str = ""
    published: bool = False
    tags: tuple[Any, ...] = ()
    description: str = ""
    stream: Stream | None = None
    file_size: int = 0
    last_reload_time: str = ""
    thumbnail: str = ""
    saved_in_product_version: str = ""
    migration_hash: str = ""
    schema_path: str = ""
    custom_properties: tuple[Any, ...] = ()
    privileges: dict[str, Any] | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Any) -> ApplicationResult:
        data = _mapping(data, "app")
        owner = data.get("owner")
        stream = data.get("stream")
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            app_id=data.get("appId", ""),
            created_date=data.get("createdDate", ""),
            modified_date=data.get("modifiedDate", ""),
            modified_by_user_name=data.get("modifiedByUserName", ""),
            owner=Owner.from_dict(owner) if owner else None,
            publish_time=data.get("publishTime", ""),
            published=bool(data.get("published", False)),
            tags=tuple(data.get("tags") or ()),
            description=data.get("description", ""),
            stream=Stream.from_dict(stream) if stream else None,
            file_size=data.get("fileSize", 0),
            last_reload_time=data.get("lastReloadTime", ""),
            thumbnail=data.get("thumbnail", ""),
            saved_in_product_version=data.get("savedInProductVersion", ""),
            migration_hash=data.get("migrationHash", ""),
            schema_path=data.get("schemaPath", ""),
            custom_properties=tuple(data.get("customProperties") or ()),
            privileges=data.get("privileges"),
            raw=dict(data),
        )

    @classmethod
    def list_from_json(cls, data: Any) -> list[ApplicationResult]:
        if not isinstance(data, list):
            raise QlikDecodeError(f"Expected a JSON array of apps, got {type(data).__name__}")
        return [cls.from_dict(item) for item in data]


@dataclass(frozen=True, slots=True)
class Ticket:
    """Authentication ticket issued by the proxy service."""

    user_directory: str = ""
    user_id: str = ""
    ticket: str = ""
    target_uri: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Ticket:
        data = _mapping(data, "ticket")
        return cls(
            user_directory=data.get("UserDirectory", ""),
            user_id=data.get("UserId", ""),
            ticket=data.get("Ticket", ""),
            target_uri=data.get("TargetUri"),
        )
