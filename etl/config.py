"""
Pipeline Configuration
Configuration settings for ingestion, retrieval and answer generation
"""

import os
from typing import List

from dotenv import load_dotenv

from etl.error_handling import ConfigurationError

# Load environment variables from .env file
load_dotenv()


def _get_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {'1', 'true', 't', 'yes', 'y'}


# Blob storage configuration; URL and service key are read through get_setting
STORAGE_CONFIG = {
    'bucket': os.getenv('STORAGE_BUCKET', 'course-files'),
    'timeout_seconds': float(os.getenv('FETCH_TIMEOUT_SECONDS', '30')),
}

# Vector embedding configuration
EMBEDDING_CONFIG = {
    'model': os.getenv('EMBEDDING_MODEL', 'models/text-embedding-004'),
    'dimensions': int(os.getenv('EMBEDDING_DIM', '768')),
    'batch_size': int(os.getenv('EMBEDDING_BATCH_SIZE', '100')),
    'timeout_seconds': float(os.getenv('EMBEDDING_TIMEOUT_SECONDS', '30')),
    'enable_cache': _get_bool('EMBEDDING_ENABLE_CACHE', 'true'),
    'cache_ttl_hours': int(os.getenv('EMBEDDING_CACHE_TTL_HOURS', '24')),
}

# Answer generation configuration
GENERATION_CONFIG = {
    'model': os.getenv('GENERATION_MODEL', 'gemini-2.0-flash'),
    'temperature': float(os.getenv('GENERATION_TEMPERATURE', '0.3')),
    'max_output_tokens': int(os.getenv('GENERATION_MAX_OUTPUT_TOKENS', '2048')),
}

# Chunking configuration
CHUNKING_CONFIG = {
    'max_chars': int(os.getenv('CHUNK_MAX_CHARS', '1200')),
}

# Retrieval configuration
RETRIEVAL_CONFIG = {
    'default_match_count': int(os.getenv('DEFAULT_MATCH_COUNT', '6')),
    'max_match_count': int(os.getenv('MAX_MATCH_COUNT', '20')),
}

# Logging configuration
LOGGING_CONFIG = {
    'log_level': os.getenv('LOG_LEVEL', 'INFO'),
    'enable_file_logging': _get_bool('LOG_ENABLE_FILE', 'false'),
    'enable_console_logging': _get_bool('LOG_ENABLE_CONSOLE', 'true'),
    'enable_structured_logging': _get_bool('LOG_ENABLE_STRUCTURED', 'true'),
    'log_dir': os.getenv('LOG_DIR', 'logs'),
}

# Settings each endpoint needs before it can serve a request
INGESTION_REQUIRED_SETTINGS = ('GOOGLE_API_KEY', 'STORAGE_URL', 'STORAGE_SERVICE_KEY')
ASK_REQUIRED_SETTINGS = ('GOOGLE_API_KEY', 'GEMINI_API_KEY')


def get_setting(name: str) -> str:
    """Current value of a credential setting, read from the environment at call time."""
    if name == 'GEMINI_API_KEY':
        value = os.getenv('GEMINI_API_KEY') or os.getenv('GOOGLE_API_KEY', '')
    else:
        value = os.getenv(name, '')
    return (value or '').strip()


def missing_settings(names) -> List[str]:
    """Return the names from ``names`` that are unset or blank in the environment."""
    return [name for name in names if not get_setting(name)]


def require_settings(*names: str) -> None:
    """
    Fail fast when configuration needed by a pipeline is missing

    Raises:
        ConfigurationError: If any of the named settings is missing
    """
    missing = missing_settings(names)
    if missing:
        raise ConfigurationError(
            f"Missing required configuration: {', '.join(missing)}",
            details={'missing': missing},
        )
