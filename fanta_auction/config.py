"""
Configuration constants for the fantasy football live auction.
"""

# Roles
ROLES = ['P', 'D', 'C', 'A']  # Goalkeeper, Defender, Midfielder, Forward

# Roster caps per role
ROLE_LIMITS = {
    'P': 3,
    'D': 8,
    'C': 8,
    'A': 6,
}

SQUAD_SIZE = sum(ROLE_LIMITS.values())  # 25

# Credits
DEFAULT_INITIAL_CREDITS = 500

# Admin identity
ADMIN_USER_ID = 'admin'
ADMIN_USER_NAME = 'Ceffo & Bolla Admin'
ADMIN_TEAM_NAME = 'Ceffo & Bolla'

# ===== TIMERS (seconds) =====

# Full window when a new player is put up for auction
OPENING_COUNTDOWN_SEC = 10
# Anti-snipe window re-armed on every accepted bid
BID_COUNTDOWN_SEC = 5
# How long the SOLD result stays on screen before the next player
SOLD_DISPLAY_DELAY_SEC = 5

# Test mode runs the same state machine with shortened timers
TEST_OPENING_COUNTDOWN_SEC = 3
TEST_BID_COUNTDOWN_SEC = 2
TEST_SOLD_DISPLAY_DELAY_SEC = 2

# ===== REPLICATION =====

# Snapshots buffered per subscriber before the oldest are dropped
SUBSCRIBER_QUEUE_SIZE = 32

# Longest a long-poll request may wait for a newer snapshot
MAX_LONG_POLL_SEC = 30

# Client reconnect backoff
CLIENT_RETRY_INITIAL_SEC = 0.5
CLIENT_RETRY_MAX_SEC = 10.0
CLIENT_REQUEST_TIMEOUT_SEC = 5

# ===== STORAGE =====

STATE_DIR = 'data/auction'
SNAPSHOT_FILENAME = 'auction_state.json'
EXPORT_DIR = 'data/output'

# ===== CLUBS =====

SERIE_A_CLUBS = [
    'Atalanta', 'Bologna', 'Cagliari', 'Como', 'Cremonese', 'Fiorentina',
    'Genoa', 'Hellas Verona', 'Inter', 'Juventus', 'Lazio', 'Lecce', 'Milan',
    'Napoli', 'Parma', 'Pisa', 'Roma', 'Sassuolo', 'Torino', 'Udinese',
]

# Minimum fuzzy score for a club name to be snapped to a known club
CLUB_MATCH_THRESHOLD = 85

# CSV columns required for player-pool import
PLAYER_CSV_COLUMNS = ['name', 'role', 'club', 'value']

# Logging
LOG_LEVEL = 'INFO'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# ===== API SERVER =====

API_HOST = '127.0.0.1'
API_PORT = 8000
API_TITLE = 'Fanta Auction API'
API_VERSION = '1.0.0'
USER_ID_HEADER = 'X-User-Id'
