import os
from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
SRC_DIR = os.path.join(PROJECT_ROOT, "src")
PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))

# Rule corpus
RULES_PATH = os.getenv("RULES_PATH", os.path.join(PACKAGE_DIR, "rules", "consumer_rules.yml"))
RULE_INDEX_PATH = os.getenv("RULE_INDEX_PATH", os.path.join(PROJECT_ROOT, "models", "rule_index.pkl"))

# Embeddings
EMBEDDING_BACKEND = os.getenv("EMBEDDING_BACKEND", "sentence-transformers")  # sentence-transformers, hashing
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "paraphrase-multilingual-MiniLM-L12-v2")
EMBEDDING_CACHE_SIZE = int(os.getenv("EMBEDDING_CACHE_SIZE", "512"))
HASHING_N_FEATURES = int(os.getenv("HASHING_N_FEATURES", str(2 ** 14)))

# Retrieval
MAX_CANDIDATES = int(os.getenv("MAX_CANDIDATES", "10"))
RELEVANCE_FLOOR = float(os.getenv("RELEVANCE_FLOOR", "0.15"))
KEYWORD_BONUS = float(os.getenv("KEYWORD_BONUS", "0.2"))

# Evaluation / composition
FIELD_CONFIDENCE_THRESHOLD = float(os.getenv("FIELD_CONFIDENCE_THRESHOLD", "0.70"))
SUPPORTED_LANGUAGES = ("en", "hi")

# External capability budgets
SEMANTIC_TIMEOUT_SECONDS = float(os.getenv("SEMANTIC_TIMEOUT_SECONDS", "3.0"))
PIPELINE_WORKERS = int(os.getenv("PIPELINE_WORKERS", "4"))

# Completion (explanation phrasing only)
COMPLETION_BACKEND = os.getenv("COMPLETION_BACKEND", "none")  # none, huggingface
HUGGINGFACE_API_TOKEN = os.getenv("HUGGINGFACE_API_TOKEN", "")
HUGGINGFACE_API_URL = os.getenv(
    "HUGGINGFACE_API_URL",
    "https://api-inference.huggingface.co/models/google/flan-t5-base",
)
COMPLETION_MAX_TOKENS = int(os.getenv("COMPLETION_MAX_TOKENS", "256"))
COMPLETION_TEMPERATURE = float(os.getenv("COMPLETION_TEMPERATURE", "0.0"))
COMPLETION_TIMEOUT_SECONDS = float(os.getenv("COMPLETION_TIMEOUT_SECONDS", "5.0"))

# Result cache
CACHE_TTL_SECONDS = float(os.getenv("CACHE_TTL_SECONDS", "3600"))
CACHE_MAX_ENTRIES = int(os.getenv("CACHE_MAX_ENTRIES", "1024"))

# API
MAX_CONTENT_LENGTH = int(os.getenv('MAX_CONTENT_LENGTH', '1048576'))  # 1 MB default
RATE_LIMIT_STORAGE_URI = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")
RATE_LIMIT_DEFAULT = os.getenv("RATE_LIMIT_DEFAULT", "60 per minute")
SENTRY_DSN = os.getenv("SENTRY_DSN", "")
SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.0"))
SENTRY_PROFILES_SAMPLE_RATE = float(os.getenv("SENTRY_PROFILES_SAMPLE_RATE", "0.0"))
APP_ENV = os.getenv("APP_ENV", "production")
APP_VERSION = os.getenv("APP_VERSION", "0.1.0")
BATCH_SIZE_LIMIT = int(os.getenv("BATCH_SIZE_LIMIT", "50"))
