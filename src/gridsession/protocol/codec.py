"""Helpers for encoding/decoding submitter messages on the wire."""

from __future__ import annotations

from typing import Callable, Type, TypeVar

from pydantic import BaseModel

ModelT = TypeVar("ModelT", bound=BaseModel)


def encode_message(message: BaseModel) -> bytes:
    """Serialise a message to the JSON bytes carried by a gRPC frame."""

    return message.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")


def decode_message(model_cls: Type[ModelT], raw: bytes) -> ModelT:
    """Validate and parse raw frame bytes into ``model_cls``."""

    return model_cls.model_validate_json(raw)


def serializer(model_cls: Type[BaseModel]) -> Callable[[BaseModel], bytes]:
    """Return a gRPC request/response serializer for ``model_cls``."""

    def _serialize(message: BaseModel) -> bytes:
        if not isinstance(message, model_cls):
            raise TypeError(f"Expected {model_cls.__name__}, got {type(message).__name__}")
        return encode_message(message)

    return _serialize


def deserializer(model_cls: Type[ModelT]) -> Callable[[bytes], ModelT]:
    """Return a gRPC request/response deserializer for ``model_cls``."""

    def _deserialize(raw: bytes) -> ModelT:
        return decode_message(model_cls, raw)

    return _deserialize
