import os
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() not in ('0', 'false', 'no', 'off', '')


def _env_positive_int(name: str, default: int) -> int:
    value = int(os.getenv(name, str(default)))
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {value}")
    return value


class Config:
    """Version store configuration"""

    # Repository root used when an engine is created without a path
    REPO_DIR = os.getenv('VERSIONS_REPO_DIR', '.versions')

    # Read size for streaming hashes and copies
    HASH_CHUNK_SIZE = _env_positive_int('VERSIONS_HASH_CHUNK_SIZE', 65536)

    # Flush blobs and log appends to disk before reporting success
    FSYNC = _env_flag('VERSIONS_FSYNC', True)
