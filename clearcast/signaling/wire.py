"""Validation of inbound websocket messages."""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _InboundMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class JoinRoomRequest(_InboundMessage):
    type: Literal["join-room"]
    session_key: str = Field(alias="sessionKey", min_length=1, max_length=128)
    display_name: Optional[str] = Field(default=None, alias="displayName", max_length=128)


class SignalRequest(_InboundMessage):
    type: Literal["signal"]
    to: str = Field(min_length=1)
    from_id: Optional[str] = Field(default=None, alias="from")
    payload: Any = None


class EndSessionRequest(_InboundMessage):
    type: Literal["end-session"]
    session_key: str = Field(alias="sessionKey", min_length=1, max_length=128)


InboundMessage = Union[JoinRoomRequest, SignalRequest, EndSessionRequest]

_inbound_adapter = TypeAdapter(Annotated[InboundMessage, Field(discriminator="type")])


def parse_inbound(raw: str) -> InboundMessage:
    """Parse one JSON text frame.

    Raises:
        pydantic.ValidationError: unknown type or missing fields
    """
    return _inbound_adapter.validate_json(raw)
