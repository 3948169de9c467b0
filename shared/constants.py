"""
Game constants for WordWave.
"""

# Room limits
MIN_PLAYERS = 2
MAX_PLAYERS = 8
DEFAULT_MAX_PLAYERS = 4

# Turn timing (seconds)
DEFAULT_ROUND_TIME = 15
MIN_ROUND_TIME = 5
MAX_ROUND_TIME = 120

# Rounds per game
DEFAULT_ROUNDS = 10
MIN_ROUNDS = 1
MAX_ROUNDS = 50

# Scoring
MAX_TIME_BONUS = 5
STREAK_BONUS_STEP = 5  # Every 5 consecutive words in solo mode...
STREAK_BONUS_POINTS = 5  # ...adds 5 points to each word

# Solo mode
SOLO_TIME_LIMIT = 20

# Sync coordinator
REFRESH_DEBOUNCE = 0.3
RECONNECT_DELAY_TIMED_OUT = 1.0
RECONNECT_DELAY_CLOSED = 2.0
RECONNECT_DELAY_ERROR = 5.0

# Language of the bundled word list
DEFAULT_LANGUAGE = "en"

# Seed word list for the local dictionary
SEED_WORDS = [
    "apple", "echo", "orange", "elephant", "table", "eagle",
    "door", "river", "rainbow", "wolf", "fire", "energy",
    "yarn", "night", "tree", "earth", "house", "sun",
    "moon", "nature", "game", "time", "space", "chair",
    "book", "keyboard", "dance", "music", "art", "text",
    "tiger", "rabbit", "tower", "road", "dream", "magic",
    "castle", "dragon", "quest", "team", "mountain", "ocean",
    "forest", "thunder", "lightning", "storm", "peace",
    "freedom", "journey", "adventure", "mystery", "wonder",
    "cat", "dog", "bird", "fish", "star", "cloud", "wind",
    "rain", "snow", "ice", "water", "light", "dark", "red",
    "blue", "green", "yellow", "black", "white", "love", "hope",
    "joy", "fear", "anger", "happy", "sad", "big", "small",
    "fast", "slow", "hot", "cold", "new", "old", "cyber",
]

# Words the solo opponent plays when the player misses a turn
SOLO_FILLER_WORDS = SEED_WORDS[:32]
