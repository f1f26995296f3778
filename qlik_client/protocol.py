"""JSON-RPC command and response envelopes for the Qlik engine API.

Commands are built by the constructor functions at the bottom of this module.
Each one fixes the method name and the small constant request id the engine
protocol has always used for that kind of call; ids are echoed back by the
engine but are not unique across a session.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, TypeAlias

from .errors import QlikProtocolError, QlikServerError
from .headers import make_user_header

JSONRPC_VERSION = "2.0"
NO_HANDLE = -1

def _compact(data: dict[str, Any]) -> dict[str, Any]:
    """Drop empty fields, matching the engine's omitempty JSON encoding."""
    return {
        key: value
        for key, value in data.items()
        if value is not None
        and not (isinstance(value, (str, int, float, list, dict)) and not value)
    }


def _require_mapping(value: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise QlikProtocolError(f"{what} must be a JSON object, got {type(value).__name__}")
    return value


# -----------------------------------------------------------------------------
# Structured parameters
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Info:
    """Object identity (qInfo)."""

    id: str = ""
    type: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _compact({"qId": self.id, "qType": self.type})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Info:
        return cls(id=data.get("qId", ""), type=data.get("qType", ""))


@dataclass(frozen=True, slots=True)
class ChildListData:
    """Property paths exposed for each child of a sheet (qData)."""

    title: str = ""
    description: str = ""
    meta: str = ""
    order: str = ""
    type: str = ""
    id: str = ""
    lb: str = ""
    hc: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "title": self.title,
                "description": self.description,
                "meta": self.meta,
                "order": self.order,
                "type": self.type,
                "id": self.id,
                "lb": self.lb,
                "hc": self.hc,
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ChildListData:
        return cls(
            title=data.get("title", ""),
            description=data.get("description", ""),
            meta=data.get("meta", ""),
            order=data.get("order", ""),
            type=data.get("type", ""),
            id=data.get("id", ""),
            lb=data.get("lb", ""),
            hc=data.get("hc", ""),
        )


@dataclass(frozen=True, slots=True)
class ChildListDef:
    """Child list definition (qChildListDef)."""

    data: ChildListData | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({"qData": self.data.to_dict() if self.data else None})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ChildListDef:
        raw = data.get("qData")
        return cls(data=ChildListData.from_dict(raw) if raw else None)


@dataclass(frozen=True, slots=True)
class MetaDef:
    """Sheet metadata (qMetaDef)."""

    title: str = ""
    description: str = ""
    child_list_def: ChildListDef | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "title": self.title,
                "description": self.description,
                "qChildListDef": (
                    self.child_list_def.to_dict() if self.child_list_def else None
                ),
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MetaDef:
        raw = data.get("qChildListDef")
        return cls(
            title=data.get("title", ""),
            description=data.get("description", ""),
            child_list_def=ChildListDef.from_dict(raw) if raw else None,
        )


@dataclass(frozen=True, slots=True)
class SheetParams:
    """Properties for a CreateObject call that creates a sheet."""

    meta_def: MetaDef | None = None
    rank: int = 0
    thumbnail: str = ""
    columns: int = 0
    rows: int = 0
    cells: tuple[Any, ...] = ()
    info: Info | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "qMetaDef": self.meta_def.to_dict() if self.meta_def else None,
                "rank": self.rank,
                "thumbnail": self.thumbnail,
                "columns": self.columns,
                "rows": self.rows,
                "cells": list(self.cells),
                "qInfo": self.info.to_dict() if self.info else None,
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SheetParams:
        meta = data.get("qMetaDef")
        info = data.get("qInfo")
        return cls(
            meta_def=MetaDef.from_dict(meta) if meta else None,
            rank=data.get("rank", 0),
            thumbnail=data.get("thumbnail", ""),
            columns=data.get("columns", 0),
            rows=data.get("rows", 0),
            cells=tuple(data.get("cells", ())),
            info=Info.from_dict(info) if info else None,
        )


@dataclass(frozen=True, slots=True)
class SheetParamsEx:
    """Sheet properties carrying an explicit child list definition."""

    title: str = ""
    description: str = ""
    info: Info | None = None
    child_list_def: ChildListDef | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "title": self.title,
                "description": self.description,
                "qInfo": self.info.to_dict() if self.info else None,
                "qChildListDef": (
                    self.child_list_def.to_dict() if self.child_list_def else None
                ),
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SheetParamsEx:
        info = data.get("qInfo")
        child = data.get("qChildListDef")
        return cls(
            title=data.get("title", ""),
            description=data.get("description", ""),
            info=Info.from_dict(info) if info else None,
            child_list_def=ChildListDef.from_dict(child) if child else None,
        )


def sheet_params(
    title: str,
    description: str,
    thumbnail: str,
    id: str,  # noqa: A002 - mirrors the engine's qId
    rows: int,
    columns: int,
    rank: int,
) -> SheetParams:
    """Build the properties of a new sheet."""
    return SheetParams(
        meta_def=MetaDef(title=title, description=description),
        rank=rank,
        thumbnail=thumbnail,
        columns=columns,
        rows=rows,
        info=Info(id=id, type="sheet"),
    )


def sheet_params_ex(title: str, description: str, id: str = "SH01") -> SheetParamsEx:  # noqa: A002
    """Build sheet properties with the standard child list property paths."""
    return SheetParamsEx(
        title=title,
        description=description,
        info=Info(id=id, type="sheet"),
        child_list_def=ChildListDef(
            data=ChildListData(
                title="/title",
                description="/description",
                meta="/meta",
                order="/order",
                type="/qInfo/qType",
                id="/qInfo/qId",
                lb="/qListObjectDef",
                hc="/qHyperCubeDef",
            )
        ),
    )


_SHEET_EX_KEYS = frozenset({"title", "description", "qChildListDef"})


def _decode_object_param(data: Mapping[str, Any]) -> SheetParams | SheetParamsEx:
    """Pick the sheet variant from the keys present.

    Empty fields are not encoded, so an object carrying only ``qInfo`` fits
    both variants; it decodes as SheetParams, which encodes to the same wire
    form.
    """
    if _SHEET_EX_KEYS & data.keys():
        return SheetParamsEx.from_dict(data)
    return SheetParams.from_dict(data)


# -----------------------------------------------------------------------------
# Command parameters
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PositionalParams:
    """Positional string arguments, e.g. ``[name]`` for CreateApp."""

    values: tuple[str, ...] = ()

    def to_wire(self) -> list[Any]:
        return list(self.values)


@dataclass(frozen=True, slots=True)
class ObjectParams:
    """A list of structured property objects, e.g. for CreateObject."""

    objects: tuple[SheetParams | SheetParamsEx, ...] = ()

    def to_wire(self) -> list[Any]:
        return [obj.to_dict() for obj in self.objects]


CommandParams: TypeAlias = PositionalParams | ObjectParams


def _decode_params(raw: Any) -> CommandParams:
    if raw is None:
        return PositionalParams()
    if not isinstance(raw, list):
        raise QlikProtocolError(f"params must be a JSON array, got {type(raw).__name__}")
    if all(isinstance(item, str) for item in raw):
        return PositionalParams(tuple(raw))
    if all(isinstance(item, Mapping) for item in raw):
        return ObjectParams(tuple(_decode_object_param(item) for item in raw))
    raise QlikProtocolError("params must be all strings or all objects")


# -----------------------------------------------------------------------------
# Request envelope
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Command:
    """A single JSON-RPC request to the engine."""

    id: int
    method: str
    handle: int = NO_HANDLE
    params: CommandParams = field(default_factory=PositionalParams)
    delta: bool = False
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "jsonrpc": self.jsonrpc,
            "id": self.id,
            "method": self.method,
            "handle": self.handle,
            "delta": self.delta,
            "params": self.params.to_wire(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Any) -> Command:
        """Decode a request envelope.

        Raises:
            QlikProtocolError: If required fields are missing or mistyped.
        """
        data = _require_mapping(data, "request")
        method = data.get("method")
        if not isinstance(method, str) or not method:
            raise QlikProtocolError("request is missing a method")
        request_id = data.get("id", 0)
        handle = data.get("handle", NO_HANDLE)
        if not isinstance(request_id, int) or not isinstance(handle, int):
            raise QlikProtocolError("request id and handle must be integers")
        return cls(
            id=request_id,
            method=method,
            handle=handle,
            params=_decode_params(data.get("params")),
            delta=bool(data.get("delta", False)),
            jsonrpc=data.get("jsonrpc", JSONRPC_VERSION),
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> Command:
        try:
            data = json.loads(text)
        except ValueError as err:
            raise QlikProtocolError(f"request is not valid JSON: {err}") from err
        return cls.from_dict(data)


# -----------------------------------------------------------------------------
# Response envelope
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class WebsocketError:
    """Error object embedded in an engine response."""

    code: int = 0
    parameter: str = ""
    message: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WebsocketError:
        return cls(
            code=data.get("code", 0),
            parameter=data.get("parameter", ""),
            message=data.get("message", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {"code": self.code, "parameter": self.parameter, "message": self.message}
        )

    def to_exception(self, response: Response | None = None) -> QlikServerError:
        return QlikServerError(
            self.code, self.message, self.parameter, response=response
        )


@dataclass(frozen=True, slots=True)
class Return:
    """Object reference returned by the engine (qReturn)."""

    type: str = ""
    handle: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Return:
        return cls(type=data.get("qType", ""), handle=data.get("qHandle", 0))


@dataclass(frozen=True, slots=True)
class EngineStream:
    """A stream entry from GetStreamList."""

    id: str = ""
    name: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EngineStream:
        return cls(id=data.get("qId", ""), name=data.get("qName", ""))


@dataclass(frozen=True, slots=True)
class Result:
    """Result payload of a successful engine call.

    Only the fields used by the supported commands are decoded; ``payload``
    keeps the raw result object for anything else.
    """

    success: bool = False
    app_id: str = ""
    type: str = ""
    handle: int = 0
    script: str = ""
    stream_list: tuple[EngineStream, ...] = ()
    return_: Return | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Result:
        streams = data.get("qStreamList") or []
        if not isinstance(streams, list):
            raise QlikProtocolError("qStreamList must be a JSON array")
        returned = data.get("qReturn")
        if returned is not None:
            returned = Return.from_dict(_require_mapping(returned, "qReturn"))
        return cls(
            success=bool(data.get("qSuccess", False)),
            app_id=data.get("qAppId", ""),
            type=data.get("qType", ""),
            handle=data.get("qHandle", 0),
            script=data.get("qScript", ""),
            stream_list=tuple(
                EngineStream.from_dict(_require_mapping(item, "qStreamList entry"))
                for item in streams
            ),
            return_=returned,
            payload=dict(data),
        )


@dataclass(frozen=True, slots=True)
class Response:
    """A single JSON-RPC response from the engine."""

    jsonrpc: str = JSONRPC_VERSION
    id: int | None = None
    result: Result | None = None
    error: WebsocketError | None = None
    change: tuple[int, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> Response:
        """Decode a response envelope.

        Raises:
            QlikProtocolError: If the envelope or its members are malformed.
        """
        data = _require_mapping(data, "response")
        result = data.get("result")
        error = data.get("error")
        change = data.get("change") or []
        if not isinstance(change, list) or not all(isinstance(h, int) for h in change):
            raise QlikProtocolError("change must be a list of handles")
        response_id = data.get("id")
        if response_id is not None and not isinstance(response_id, int):
            raise QlikProtocolError("response id must be an integer")
        return cls(
            jsonrpc=data.get("jsonrpc", JSONRPC_VERSION),
            id=response_id,
            result=(
                Result.from_dict(_require_mapping(result, "result"))
                if result is not None
                else None
            ),
            error=(
                WebsocketError.from_dict(_require_mapping(error, "error"))
                if error is not None
                else None
            ),
            change=tuple(change),
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> Response:
        try:
            data = json.loads(text)
        except ValueError as err:
            raise QlikProtocolError(f"response is not valid JSON: {err}") from err
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.result is not None:
            data["result"] = self.result.payload
        if self.error is not None:
            data["error"] = self.error.to_dict()
        data["change"] = list(self.change)
        return data


def is_notification(data: Mapping[str, Any]) -> bool:
    """Return True for engine push messages that answer no request.

    The engine sends these (e.g. OnConnected) unprompted; they carry a
    method and no id, result or error.
    """
    return "method" in data and not any(key in data for key in ("id", "result", "error"))


# -----------------------------------------------------------------------------
# Command constructors
# -----------------------------------------------------------------------------


def _command(
    request_id: int, method: str, handle: int, params: CommandParams
) -> Command:
    return Command(id=request_id, method=method, handle=handle, params=params)


def create_app(name: str) -> Command:
    return _command(0, "CreateApp", NO_HANDLE, PositionalParams((name,)))


def create_doc_ex(name: str) -> Command:
    return _command(0, "CreateDocEx", NO_HANDLE, PositionalParams((name,)))


def open_doc(name: str, directory: str, user: str) -> Command:
    """OpenDoc as the given identity."""
    return _command(
        0,
        "OpenDoc",
        NO_HANDLE,
        PositionalParams((name, make_user_header(directory, user))),
    )


def get_active_doc() -> Command:
    return _command(1, "GetActiveDoc", NO_HANDLE, PositionalParams())


def get_script(handle: int) -> Command:
    return _command(2, "GetScript", handle, PositionalParams())


def set_script(handle: int, script: str) -> Command:
    return _command(3, "SetScript", handle, PositionalParams((script,)))


def do_reload(handle: int) -> Command:
    return _command(2, "DoReload", handle, PositionalParams())


def get_stream_list() -> Command:
    return _command(0, "GetStreamList", NO_HANDLE, PositionalParams())


def create_sheet(handle: int, params: SheetParams | SheetParamsEx) -> Command:
    """CreateObject on a document handle with sheet properties."""
    return _command(12, "CreateObject", handle, ObjectParams((params,)))
