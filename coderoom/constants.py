import os

CONFIG_FILE = "coderoom_config.json"
LOCAL_ROOT = ".coderoom"
AI_CONFIG_FILE = os.path.join(LOCAL_ROOT, "ai_config.json")
DEFAULT_DATA_DIR = os.path.join(LOCAL_ROOT, "rooms")
DEFAULT_BACKEND = "memory"
BACKEND_KINDS = ("memory", "file")

ROOM_CODE_LENGTH = 6
# No 0/O or 1/I/L, codes get read aloud.
ROOM_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
MAX_USERNAME_LENGTH = 32

AI_MENTION_TOKEN = "@ai"
AI_ASSISTANT_NAME = "🤖 AI"
AI_FALLBACK_REPLY = "Sorry, I had trouble responding. Try again! 🔄"
AI_HTTP_TIMEOUT_SECONDS = 45
AI_PROVIDERS = ("gemini", "openai")
DEFAULT_AI_PROVIDER = "gemini"
DEFAULT_AI_MODELS = {
    "gemini": "gemini-2.5-flash",
    "openai": "gpt-4o-mini",
}

ROOMS_INDEX_FILE = "rooms.jsonl"
ROOM_LOG_FILE = "changes.jsonl"
LOCK_TIMEOUT_SECONDS = 2.0
LOCK_MAX_ATTEMPTS = 20
LOCK_BACKOFF_BASE_SECONDS = 0.05
LOCK_BACKOFF_MAX_SECONDS = 0.5

NOTICE_ROOM_NOT_FOUND = "Room not found"
NOTICE_USERNAME_TAKEN = "Username already taken in this room"
NOTICE_CREATE_FAILED = "Failed to create room"
NOTICE_JOIN_FAILED = "Failed to join room"
NOTICE_LEAVE_FAILED = "Failed to leave room"
NOTICE_SEND_FAILED = "Failed to send message"
NOTICE_AI_PERSIST_FAILED = "Failed to save AI reply"
NOTICE_ROOM_CLOSED = "Room has been closed by the admin"
NOTICE_LOAD_FAILED = "Failed to load room history"
ROOM_CODE_ATTEMPTS = 5
