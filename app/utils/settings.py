import os
from dotenv import load_dotenv

load_dotenv()


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./lostfound.db")

# Matching thresholds (confidence is 0-100)
ACCEPT_THRESHOLD = int(os.getenv("MATCH_ACCEPT_THRESHOLD", "60"))
PERSIST_THRESHOLD = int(os.getenv("MATCH_PERSIST_THRESHOLD", "70"))

# Candidate cap per run, also the oracle concurrency limit
MAX_CANDIDATES = int(os.getenv("MATCH_MAX_CANDIDATES", "20"))

# Similarity oracle (OpenAI-compatible chat completions endpoint)
ORACLE_API_URL = os.getenv("ORACLE_API_URL", "https://api.openai.com/v1/chat/completions")
ORACLE_API_KEY = os.getenv("ORACLE_API_KEY")
ORACLE_MODEL = os.getenv("ORACLE_MODEL", "google/gemini-2.5-flash")
ORACLE_TEMPERATURE = float(os.getenv("ORACLE_TEMPERATURE", "0.3"))
ORACLE_TIMEOUT_SECONDS = float(os.getenv("ORACLE_TIMEOUT_SECONDS", "30"))

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

ITEM_TYPES = ["lost", "found"]
ITEM_CATEGORIES = [
    "Wallet",
    "Phone",
    "ID Card",
    "Bag",
    "Keys",
    "Electronics",
    "Books",
    "Clothing",
    "Accessories",
    "Other",
]
