"""
Connection status reported to the client.

Tracked by LiveGateway, separate from SessionEngine.state: the engine
describes the live link, this describes what the user sees (including a
sticky ERROR after a failed connect).
"""
from enum import Enum

class ConnectionStatus(Enum):
    """
    Host-facing connection lifecycle.

    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED
                               -> ERROR (until the next CONNECT)
    """
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    ERROR = "ERROR"
