"""Constants used across panesync.

Wire-level identifiers and the defaults of the remote session protocol.
"""

# Pane identifiers. The two named panes come from the wire `pane_type` field;
# PANE_MAIN is the local default sequence used outside dual-pane mode.
PANE_MAIN = "main"
PANE_DEADLOOP = "deadloop"
PANE_INTERACTIVE = "interactive"
DUAL_PANES = (PANE_DEADLOOP, PANE_INTERACTIVE)

# Websocket close codes
CLOSE_NORMAL = 1000  # user-initiated disconnect, never retried
CLOSE_ABNORMAL = 1006  # transport dropped without a close frame

# Protocol defaults (overridable through ClientConfig)
DEFAULT_SERVER_URL = "ws://localhost:8081"
DEFAULT_WS_PATH = "/ws/web"
DEFAULT_HISTORY_PAGE_SIZE = 50
DEFAULT_POLL_INTERVAL_S = 3.0
RECONNECT_INITIAL_DELAY_MS = 1000
RECONNECT_MAX_DELAY_MS = 30000
RECONNECT_MAX_ATTEMPTS = 10
RECONNECTING_INDICATOR_TIMEOUT_S = 5.0
OPEN_TIMEOUT_S = 10.0

# Raw payloads are truncated to this many characters in log lines
LOG_PAYLOAD_PREVIEW_CHARS = 100
