"""
Frame encoding and decoding.

Turns protocol models into wire frames and validates inbound frames
against the closed set of message shapes.
"""

import json
from enum import Enum
from typing import Any, Dict, Union

import msgpack
from msgpack.exceptions import UnpackException
from pydantic import ValidationError

from .errors import ProtocolError
from .protocol import MESSAGE_MODELS, ProtocolModel

Frame = Union[str, bytes]


class WireFormat(str, Enum):
    """Serialization used for frames on the channel."""
    JSON = "json"
    MSGPACK = "msgpack"


class MessageCodec:
    """Encodes outbound protocol models and strictly decodes inbound frames."""

    def __init__(self, wire_format: Union[WireFormat, str] = WireFormat.JSON):
        self.wire_format = WireFormat(wire_format)

    def to_wire(self, message: ProtocolModel) -> Dict[str, Any]:
        """Canonical tagged mapping for a message."""
        if type(message) not in MESSAGE_MODELS.values():
            raise ProtocolError(f"Cannot encode {type(message).__name__}: not a protocol message")
        return message.model_dump(by_alias=True, mode="json")

    def encode(self, message: ProtocolModel) -> Frame:
        """Encode a message into one self-contained frame."""
        data = self.to_wire(message)
        if self.wire_format == WireFormat.MSGPACK:
            return msgpack.packb(data, use_bin_type=True)
        return json.dumps(data, separators=(",", ":"))

    def decode(self, frame: Frame) -> ProtocolModel:
        """
        Decode a frame into its protocol model.

        Raises:
            ProtocolError: if the frame is not an object, carries no known
                tag, or its fields do not match the tag's shape.
        """
        data = self._unpack(frame)

        if not isinstance(data, dict):
            raise ProtocolError(f"Frame is not an object: {type(data).__name__}", frame)

        tag = data.get("type")
        if not isinstance(tag, str):
            raise ProtocolError("Frame has no message type", frame)

        model = MESSAGE_MODELS.get(tag)
        if model is None:
            raise ProtocolError(f"Unknown message type: {tag}", frame)

        try:
            return model.model_validate(data)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise ProtocolError(f"Malformed '{tag}' frame ({fields})", frame) from e

    def _unpack(self, frame: Frame) -> Any:
        if isinstance(frame, str):
            return self._load_json(frame, frame)

        if isinstance(frame, (bytes, bytearray)):
            if self.wire_format == WireFormat.MSGPACK:
                try:
                    return msgpack.unpackb(frame, raw=False)
                except (ValueError, TypeError, RecursionError, UnpackException) as e:
                    raise ProtocolError(f"Undecodable msgpack frame: {e}", frame) from e
            try:
                text = bytes(frame).decode("utf-8")
            except UnicodeDecodeError as e:
                raise ProtocolError("Frame is not valid UTF-8", frame) from e
            return self._load_json(text, frame)

        raise ProtocolError(f"Unsupported frame type: {type(frame).__name__}", frame)

    @staticmethod
    def _load_json(text: str, frame: Frame) -> Any:
        try:
            return json.loads(text)
        except (ValueError, RecursionError) as e:
            raise ProtocolError(f"Undecodable JSON frame: {e}", frame) from e
