"""Runtime support for leanpb generated code."""

from .serialization import MalformedWireDataError as MalformedWireDataError
from .serialization import Message as Message
from .serialization import ProtoEnum as ProtoEnum
from .serialization import SerializationError as SerializationError
from .serialization import log_value as log_value
from .wire import WireType as WireType
