import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from hub.errors import ProtocolError, UnknownMessageType

# one week
MAX_EVENT_MINUTES = 7 * 24 * 60


class WireModel(BaseModel):
    """Base for inbound records: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class AuctionItem(WireModel):
    name: str
    price: float


class PlayerJoin(WireModel):
    type: Literal['player_join']
    identity: str = Field(min_length=1)
    room_code: str = Field(min_length=1)
    is_admin: bool = False


class PlayerLeave(WireModel):
    type: Literal['player_leave']


class Chat(WireModel):
    type: Literal['chat']
    room_code: str
    identity: str
    text: str


class AuctionStarted(WireModel):
    type: Literal['auction_started']
    room_code: str
    identity: str
    item: AuctionItem


class AuctionEnded(WireModel):
    type: Literal['auction_ended']
    room_code: str
    winner_identity: str
    item_name: str


class Trade(WireModel):
    type: Literal['trade']
    target_id: str
    offered_items: List[Any]
    requested_items: List[Any]


class Attack(WireModel):
    type: Literal['attack']
    room_code: str
    target_id: str
    success: bool
    stolen_item: Optional[Any] = None


class AdminStartEvent(WireModel):
    type: Literal['admin_start_event']
    room_code: str
    admin_identity: str
    event_name: str = Field(min_length=1)
    duration_minutes: float = Field(gt=0, le=MAX_EVENT_MINUTES, allow_inf_nan=False)


class AdminAction(WireModel):
    type: Literal['admin_action']
    room_code: str
    admin_identity: str
    action: str = Field(min_length=1)
    details: Optional[Dict[str, Any]] = None


class BeltReseedRequest(WireModel):
    type: Literal['belt_reseed_request']
    room_code: str


InboundMessage = Annotated[
    Union[
        PlayerJoin,
        PlayerLeave,
        Chat,
        AuctionStarted,
        AuctionEnded,
        Trade,
        Attack,
        AdminStartEvent,
        AdminAction,
        BeltReseedRequest,
    ],
    Field(discriminator='type'),
]

MESSAGE_TYPES = {
    'player_join': PlayerJoin,
    'player_leave': PlayerLeave,
    'chat': Chat,
    'auction_started': AuctionStarted,
    'auction_ended': AuctionEnded,
    'trade': Trade,
    'attack': Attack,
    'admin_start_event': AdminStartEvent,
    'admin_action': AdminAction,
    'belt_reseed_request': BeltReseedRequest,
}

_inbound_adapter = TypeAdapter(InboundMessage)


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = '.'.join(str(p) for p in err.get('loc', ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get('msg', ''))
    return '; '.join(parts)


def parse_message(raw) -> InboundMessage:
    """Turn a raw inbound payload into one of the typed messages.

    ``raw`` is whatever the transport handed over: a dict, or JSON text.
    Raises UnknownMessageType for a tag with no message kind and
    ProtocolError for anything else that does not fit the schema.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise ProtocolError(f"payload is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ProtocolError('payload must be an object')

    message_type = raw.get('type')
    if not isinstance(message_type, str) or not message_type:
        raise ProtocolError('type is required')
    if message_type not in MESSAGE_TYPES:
        raise UnknownMessageType(message_type)

    try:
        return _inbound_adapter.validate_python(raw)
    except ValidationError as exc:
        raise ProtocolError(f"invalid {message_type}: {_describe(exc)}") from exc
