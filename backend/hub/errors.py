"""Error categories raised inside the relay hub.

None of these are fatal: the router and the fan-out engine catch them at
their boundaries so a single connection's fault never reaches another one.
"""


class HubError(Exception):
    """Base class for relay hub errors."""


class ProtocolError(HubError):
    """Inbound payload is malformed or misses a required field."""


class UnknownMessageType(ProtocolError):
    def __init__(self, message_type):
        super().__init__(f"unknown message type: {message_type!r}")
        self.message_type = message_type


class StateError(HubError):
    """Operation references a room, connection or identity that is not there."""


class DeliveryError(HubError):
    def __init__(self, connection_id: str, reason: str = 'connection is not live'):
        super().__init__(f"delivery to {connection_id} failed: {reason}")
        self.connection_id = connection_id
