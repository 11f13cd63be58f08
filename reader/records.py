from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import MalformedRecord


@dataclass(frozen=True)
class Attachment:
    """A media attachment declared on a note."""

    url: str
    media_type: str = ""
    name: Optional[str] = None


@dataclass(frozen=True)
class Note:
    """Normalised representation of an ActivityPub Note we care about."""

    id: str
    content: Optional[str] = None
    attributed_to: Optional[str] = None
    published: Optional[str] = None
    summary: Optional[str] = None
    sensitive: bool = False
    in_reply_to: Optional[str] = None
    attachment: Tuple[Attachment, ...] = ()
    url: Optional[str] = None
    type: str = "Note"


@dataclass(frozen=True)
class Activity:
    """An envelope record wrapping a Note under ``object``.

    Root-level fields are kept separately so extraction can fall back from
    the envelope to the wrapped note.
    """

    id: str
    object: Note
    type: str = "Create"
    actor: Optional[str] = None
    published: Optional[str] = None
    content: Optional[str] = None
    attributed_to: Optional[str] = None
    summary: Optional[str] = None
    sensitive: Optional[bool] = None
    attachment: Tuple[Attachment, ...] = ()


Record = Union[Note, Activity]


@dataclass(frozen=True)
class Actor:
    id: str
    name: Optional[str] = None
    preferred_username: Optional[str] = None
    # Either a single icon mapping or an ordered list of them, as published.
    icon: Any = None
    outbox: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


def parse_record(data: Mapping[str, Any]) -> Record:
    """Turn a raw JSON-LD mapping into a ``Note`` or an ``Activity``.

    This is the only place where the two shapes are told apart by field
    presence: a mapping carrying ``object`` is an Activity.
    """

    if "object" in data:
        inner = data.get("object")
        if isinstance(inner, str):
            # Unresolved reference; only the id is known.
            note = Note(id=inner)
        elif isinstance(inner, Mapping):
            note = parse_note(inner)
        else:
            raise MalformedRecord("object", _id_of(data))

        sensitive = data.get("sensitive")
        return Activity(
            id=_require_id(data),
            object=note,
            type=str(data.get("type") or "Create"),
            actor=_ref(data.get("actor")),
            published=data.get("published"),
            content=data.get("content"),
            attributed_to=_ref(data.get("attributedTo")),
            summary=data.get("summary") or None,
            sensitive=bool(sensitive) if sensitive is not None else None,
            attachment=_attachments(data.get("attachment")),
        )

    return parse_note(data)


def parse_note(data: Mapping[str, Any]) -> Note:
    url = data.get("url")
    return Note(
        id=_require_id(data),
        content=data.get("content"),
        attributed_to=_ref(data.get("attributedTo")),
        published=data.get("published"),
        summary=data.get("summary") or None,
        sensitive=bool(data.get("sensitive")),
        in_reply_to=_ref(data.get("inReplyTo")),
        attachment=_attachments(data.get("attachment")),
        url=url if isinstance(url, str) else _ref(url),
        type=str(data.get("type") or "Note"),
    )


def parse_actor(data: Mapping[str, Any]) -> Actor:
    return Actor(
        id=_require_id(data),
        name=data.get("name") or None,
        preferred_username=data.get("preferredUsername") or None,
        icon=data.get("icon"),
        outbox=_ref(data.get("outbox")),
        raw=dict(data),
    )


def _require_id(data: Mapping[str, Any]) -> str:
    record_id = data.get("id")
    if not isinstance(record_id, str) or not record_id:
        raise MalformedRecord("id")
    return record_id


def _id_of(data: Mapping[str, Any]) -> str:
    record_id = data.get("id")
    return record_id if isinstance(record_id, str) else ""


def _ref(value: Any) -> Optional[str]:
    """Collapse a JSON-LD reference (string, object or list) to a URL."""

    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    if isinstance(value, Mapping):
        return _ref(value.get("id") or value.get("href"))
    if isinstance(value, (list, tuple)):
        for item in value:
            ref = _ref(item)
            if ref:
                return ref
    return None


def _attachments(value: Any) -> Tuple[Attachment, ...]:
    if not value:
        return ()
    items: List[Any] = value if isinstance(value, list) else [value]

    attachments: List[Attachment] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        url = item.get("url")
        if not isinstance(url, str):
            url = _ref(url)
        if not url:
            continue
        attachments.append(
            Attachment(
                url=url,
                media_type=str(item.get("mediaType") or ""),
                name=item.get("name") or None,
            )
        )
    return tuple(attachments)
