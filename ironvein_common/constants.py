"""
Game constants and protocol values.
This file centralizes the magic numbers shared by the client and the protocol models.
"""

# Game World Constants
GRID_SIZE = 20  # Width and height of the square grid in cells
DEFAULT_HEALTH = 100  # Health assigned to players announced without stats
DEFAULT_RESOURCES = 0  # Resources assigned to players announced without stats
DEFAULT_SPAWN_X = 0  # Position used for the optimistic local join
DEFAULT_SPAWN_Y = 0

# Heartbeat Constants
PROBE_BODY = "p"  # Chat body reserved for latency probes
HEARTBEAT_INTERVAL = 5.0  # Seconds between probes
PROBE_TIMEOUT = 15.0  # Seconds before an unanswered probe is abandoned
RTT_SAMPLE_WINDOW = 10  # Samples kept for the rolling latency average

# Chat Constants
PENDING_CHAT_TIMEOUT = 30.0  # Seconds before an unechoed chat placeholder is evicted
CHAT_HISTORY_LIMIT = 100  # Authoritative chat lines kept by the dispatcher

# Server Constants
DEFAULT_SERVER_URL = "http://localhost:8080"
DEFAULT_WEBSOCKET_PATH = "/ws"
DEFAULT_API_PATH = "/api/data"
ABNORMAL_CLOSE_CODE = 1006  # Reported when the channel drops without a close frame
