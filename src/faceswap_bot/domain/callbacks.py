"""Button callback data codec.

Callback data is a ``|``-delimited string kept within Telegram's 64-byte
limit. It is decoded once at the transport boundary into one of the command
dataclasses below.
"""

from dataclasses import dataclass
from uuid import UUID

MAX_CALLBACK_BYTES = 64
_DELIMITER = "|"


@dataclass(frozen=True)
class NextPage:
    session_id: str


@dataclass(frozen=True)
class PrevPage:
    session_id: str


@dataclass(frozen=True)
class SelectResult:
    session_id: str
    index: int


@dataclass(frozen=True)
class CancelSearch:
    session_id: str


@dataclass(frozen=True)
class StartSwap:
    session_id: str


@dataclass(frozen=True)
class SelectFace:
    session_id: str
    face_id: UUID


@dataclass(frozen=True)
class UploadFace:
    session_id: str


@dataclass(frozen=True)
class CancelSwap:
    session_id: str


@dataclass(frozen=True)
class Noop:
    pass


CallbackCommand = (
    NextPage
    | PrevPage
    | SelectResult
    | CancelSearch
    | StartSwap
    | SelectFace
    | UploadFace
    | CancelSwap
    | Noop
)

_SESSION_ONLY: dict[str, type] = {
    "gn": NextPage,
    "gp": PrevPage,
    "gx": CancelSearch,
    "ss": StartSwap,
    "su": UploadFace,
    "sx": CancelSwap,
}
_TAGS: dict[type, str] = {cls: tag for tag, cls in _SESSION_ONLY.items()}


def encode_callback(command: CallbackCommand) -> str:
    """Encode a command into callback data."""
    if isinstance(command, Noop):
        data = "n"
    elif isinstance(command, SelectResult):
        data = _join("gs", command.session_id, str(command.index))
    elif isinstance(command, SelectFace):
        data = _join("sf", command.session_id, command.face_id.hex)
    else:
        data = _join(_TAGS[type(command)], command.session_id)
    if len(data.encode()) > MAX_CALLBACK_BYTES:
        raise ValueError(f"Callback data exceeds {MAX_CALLBACK_BYTES} bytes: {data}")
    return data


def decode_callback(data: str) -> CallbackCommand | None:
    """Decode callback data, returning None for anything unrecognized."""
    if data == "n":
        return Noop()
    tag, _, rest = data.partition(_DELIMITER)
    if not rest:
        return None
    fields = rest.split(_DELIMITER)
    session_id = fields[0]
    if not session_id:
        return None
    if tag in _SESSION_ONLY and len(fields) == 1:
        return _SESSION_ONLY[tag](session_id)
    if tag == "gs" and len(fields) == 2 and fields[1].isdigit():
        return SelectResult(session_id, int(fields[1]))
    if tag == "sf" and len(fields) == 2:
        try:
            return SelectFace(session_id, UUID(hex=fields[1]))
        except ValueError:
            return None
    return None


def _join(*parts: str) -> str:
    for part in parts:
        if _DELIMITER in part:
            raise ValueError(f"Callback field contains a delimiter: {part}")
    return _DELIMITER.join(parts)
