import os
from dotenv import load_dotenv
from pathlib import Path

# Load environment variables from .env file with explicit path
load_dotenv(dotenv_path=Path(__file__).parent.parent / '.env')

# OpenAI Configuration
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MAX_ATTEMPTS = int(os.getenv("OPENAI_MAX_ATTEMPTS", "3"))

# Catalog Configuration
#
# CATALOG_BACKEND selects the storage backend once at startup: "json" reads
# museums.json plus one <collection_id>.json per collection from CATALOG_DATA_DIR,
# "sql" reads the SQLite database at CATALOG_DB_PATH.
CATALOG_BACKEND = os.getenv("CATALOG_BACKEND", "json").lower()
CATALOG_DATA_DIR = os.getenv(
    "CATALOG_DATA_DIR", str(Path(__file__).parent.parent / "data" / "museums")
)
CATALOG_DB_PATH = os.getenv("CATALOG_DB_PATH", "docent_catalog.db")

# Embedding Configuration
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
EMBEDDING_BATCH_SIZE = int(os.getenv("EMBEDDING_BATCH_SIZE", "100"))
# 10 batches/s keeps the embedding endpoint well under 3000 RPM
EMBEDDING_BATCHES_PER_SECOND = float(os.getenv("EMBEDDING_BATCHES_PER_SECOND", "10"))
EMBEDDING_TIMEOUT_SECONDS = float(os.getenv("EMBEDDING_TIMEOUT_SECONDS", "30"))

# Chat Completion Configuration
CHAT_MODEL = os.getenv("CHAT_MODEL", "gpt-4o-mini")
CHAT_MAX_OUTPUT_TOKENS = int(os.getenv("CHAT_MAX_OUTPUT_TOKENS", "600"))
CHAT_TEMPERATURE = float(os.getenv("CHAT_TEMPERATURE", "0.7"))
COMPLETION_TIMEOUT_SECONDS = float(os.getenv("COMPLETION_TIMEOUT_SECONDS", "60"))

# Retrieval / Budget Configuration
GROUNDING_TOKEN_LIMIT = int(os.getenv("GROUNDING_TOKEN_LIMIT", "1000"))
HISTORY_TOKEN_LIMIT = int(os.getenv("HISTORY_TOKEN_LIMIT", "1500"))
SEMANTIC_TOP_K = int(os.getenv("SEMANTIC_TOP_K", "5"))

# Spending guard (USD)
DAILY_COST_LIMIT = float(os.getenv("DAILY_COST_LIMIT", "5.00"))
MONTHLY_COST_LIMIT = float(os.getenv("MONTHLY_COST_LIMIT", "100.00"))
