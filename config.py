import logging
import os
from dataclasses import dataclass
from functools import lru_cache

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def _optional_int(value):
    if value is None or value.strip() == '':
        return None
    return int(value)


@dataclass(frozen=True)
class Settings:
    """Runtime settings, read from the environment."""

    storage_backend: str = 'json'
    data_file: str = os.path.join(BASE_DIR, 'hms_storage.json')
    db_name: str = os.path.join(BASE_DIR, 'hms_storage.db')
    key_prefix: str = 'app'
    quota_bytes: int = None
    log_level: str = 'INFO'

    # --- Flask ---
    secret_key: str = 'secret-key-change-this'
    host: str = '0.0.0.0'
    port: int = 5000
    debug: bool = False

    @classmethod
    def from_env(cls, environ=None):
        env = os.environ if environ is None else environ
        return cls(
            storage_backend=env.get('HMS_STORAGE', 'json').strip().lower(),
            data_file=env.get('HMS_DATA_FILE', os.path.join(BASE_DIR, 'hms_storage.json')),
            db_name=env.get('HMS_DB_NAME', os.path.join(BASE_DIR, 'hms_storage.db')),
            key_prefix=env.get('HMS_KEY_PREFIX', 'app'),
            quota_bytes=_optional_int(env.get('HMS_QUOTA_BYTES')),
            log_level=env.get('HMS_LOG_LEVEL', 'INFO').upper(),
            secret_key=env.get('SECRET_KEY', 'secret-key-change-this'),
            host=env.get('HOST', '0.0.0.0'),
            port=int(env.get('PORT', 5000)),
            debug=env.get('FLASK_DEBUG', '0') == '1',
        )


@lru_cache()
def get_settings():
    """Get cached settings instance."""
    return Settings.from_env()


def configure_logging(settings=None):
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
