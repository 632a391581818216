from .codec import decode_message, deserializer, encode_message, serializer
from .submitter import (
    CREATE_SESSION,
    GET_RESULT,
    SUBMIT_TASKS,
    SUBMITTER_METHODS,
    SUBMITTER_SERVICE,
    SubmitterClient,
    method_path,
)

__all__ = [
    "CREATE_SESSION",
    "GET_RESULT",
    "SUBMIT_TASKS",
    "SUBMITTER_METHODS",
    "SUBMITTER_SERVICE",
    "SubmitterClient",
    "decode_message",
    "deserializer",
    "encode_message",
    "method_path",
    "serializer",
]
