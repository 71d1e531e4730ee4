"""Protocol and state constants."""

from __future__ import annotations

from typing import Literal

BufferKind = Literal["server", "channel", "query", "special"]
NetworkState = Literal["disconnected", "connecting", "connected"]
ChannelListState = Literal["idle", "updating", "updated"]

MessageType = Literal[
    "privmsg",
    "notice",
    "action",
    "traffic",
    "error",
    "mode",
    "topic",
    "motd",
    "nick",
    "wallops",
    "raw",
    "",
]

SERVER_BUFFER = "*"
RAW_BUFFER = "*raw"

# Default channel prefixes when the server has not advertised CHANTYPES
DEFAULT_CHANTYPES = "#&"

# Reserved command used by the transport for its own signalling; never shown
CONTROL_COMMAND = "CONTROL"

# Bouncer control connection; authenticates without selecting a real network
BNC_CONTROL_NETWORK = "bnccontrol"
BNC_CONTROL_AUTH_NAME = "__authonly"

# Placeholder network name used by parsers before NETWORK= is advertised
DEFAULT_NETWORK_NAME = "Network"

# Channel-list entries for secret channels are reported with this name
HIDDEN_CHANNEL = "*"

# Known services that prefix PMs with "[#channel]" to address a channel
CHANSERV_NICK = "chanserv"
