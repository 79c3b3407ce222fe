from enum import Enum
from langchain_postgres.vectorstores import DistanceStrategy


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LLMProvider(str, Enum):
    OPENAI = "openai"
    GEMINI = "gemini"
    OPENROUTER = "openrouter"


class DatabaseProvider(str, Enum):
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"
    MYSQL = "mysql"
    SQLSERVER = "sqlserver"


class OPENAI_LLM_MODELS(str, Enum):
    GPT_4O = "gpt-4o"
    GPT_4O_MINI = "gpt-4o-mini"


class GEMINI_LLM_MODELS(str, Enum):
    GEMINI_20_FLASH = "gemini-2.0-flash"
    GEMINI_25_FLASH = "gemini-2.5-flash"


class OPENROUTER_LLM_MODELS(str, Enum):
    GPT_4O_MINI = "openai/gpt-4o-mini"
    ANTHROPIC_SONNET_45 = "anthropic/claude-4.5-sonnet"
    GEMINI_25_FLASH = "google/gemini-2.5-flash"


class EMBEDDING_MODELS(str, Enum):
    OPENAI_TEXT_EMBEDDING_3_SMALL = "text-embedding-3-small"
    OPENAI_TEXT_EMBEDDING_3_LARGE = "text-embedding-3-large"
    GEMINI_TEXT_EMBEDDING_004 = "text-embedding-004"
    OPENROUTER_TEXT_EMBEDDING_3_SMALL = "openai/text-embedding-3-small"


OPENAI_API_URL = "https://api.openai.com/v1"
GEMINI_OPENAI_COMPAT_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
OPEN_ROUTER_API_URL = "https://openrouter.ai/api/v1"

# Provider defaults used when LLM__MODEL / LLM__BASE_URL are not set
LLM_PROVIDER_DEFAULTS = {
    LLMProvider.OPENAI: (OPENAI_LLM_MODELS.GPT_4O_MINI.value, OPENAI_API_URL),
    LLMProvider.GEMINI: (GEMINI_LLM_MODELS.GEMINI_20_FLASH.value, GEMINI_OPENAI_COMPAT_URL),
    LLMProvider.OPENROUTER: (OPENROUTER_LLM_MODELS.GPT_4O_MINI.value, OPEN_ROUTER_API_URL),
}

EMBEDDING_PROVIDER_DEFAULTS = {
    LLMProvider.OPENAI: (EMBEDDING_MODELS.OPENAI_TEXT_EMBEDDING_3_SMALL.value, OPENAI_API_URL),
    LLMProvider.GEMINI: (EMBEDDING_MODELS.GEMINI_TEXT_EMBEDDING_004.value, GEMINI_OPENAI_COMPAT_URL),
    LLMProvider.OPENROUTER: (EMBEDDING_MODELS.OPENROUTER_TEXT_EMBEDDING_3_SMALL.value, OPEN_ROUTER_API_URL),
}

# -------------------------
# Vector Store Constants
# -------------------------

# Mapping from DistanceStrategy to PostgreSQL pgvector operator classes
# These operator class names are PostgreSQL pgvector extension constants
# used in CREATE INDEX statements, not Python library constants
PGVECTOR_OPS_MAP = {
    DistanceStrategy.COSINE: "vector_cosine_ops",
    DistanceStrategy.EUCLIDEAN: "vector_l2_ops",
    DistanceStrategy.MAX_INNER_PRODUCT: "vector_ip_ops",
}
