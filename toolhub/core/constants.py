"""Core constants for cross-module use."""

# Increment when response schemas/fields change in a backward-incompatible way
SCHEMA_VERSION = "1.0.0"

CLIENT_NAME = "personal-ai-client"
CLIENT_VERSION = "1.0.0"

# Fixed budget for transport setup plus the initialize handshake
CONNECT_TIMEOUT_SECONDS = 10.0

DEFAULT_TOOL_CALL_TIMEOUT_SECONDS = 60.0

# Time a stdio server gets to exit after SIGTERM before it is killed
PROCESS_TERMINATE_GRACE_SECONDS = 2.0

# JSON-RPC error code the protocol SDK uses when the transport went away
CONNECTION_CLOSED_CODE = -32000

# Schema stored for tools that declare no input schema
EMPTY_INPUT_SCHEMA = {"type": "object", "properties": {}, "required": []}
