import logging
import os

log = logging.getLogger("loradash.config")


def _env_int(name, default):
    raw = os.environ.get(name)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        log.warning("Invalid integer for %s=%r, using %s", name, raw, default)
        return default


def _env_float(name, default):
    raw = os.environ.get(name)
    if raw is None or raw == '':
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning("Invalid number for %s=%r, using %s", name, raw, default)
        return default


# --- MQTT Configuration ---
MQTT_BROKER = os.environ.get('MQTT_BROKER', 'broker.hivemq.com')
MQTT_PORT = _env_int('MQTT_PORT', 1883)
MQTT_TOPIC = os.environ.get('MQTT_TOPIC', 'lora/sensores')
MQTT_USERNAME = os.environ.get('MQTT_USERNAME', '')
MQTT_PASSWORD = os.environ.get('MQTT_PASSWORD', '')

# --- Storage / Server ---
DB_PATH = os.environ.get('DB_PATH', 'sensores.db')
HOST = os.environ.get('HOST', '0.0.0.0')
PORT = _env_int('PORT', 3000)
PUBLIC_DIR = os.environ.get('PUBLIC_DIR', 'public')
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# --- REST limits ---
LATEST_LIMIT = _env_int('LATEST_LIMIT', 10)
ALL_LIMIT = _env_int('ALL_LIMIT', 5000)
CHUNK_LIMIT = _env_int('CHUNK_LIMIT', 500)
HISTORY_SEED = _env_int('HISTORY_SEED', 50)

# --- Dashboard ---
HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS

GAP_MS = _env_int('GAP_MS', DAY_MS)
BLOCK_MS = _env_int('BLOCK_MS', 3 * DAY_MS)
BLOCK_PAUSE_S = _env_float('BLOCK_PAUSE_S', 0.01)
MAX_POINTS = _env_int('MAX_POINTS', 5000)
PAD_FRACTION = _env_float('PAD_FRACTION', 0.15)
MAX_PAD_MS = _env_int('MAX_PAD_MS', 7 * DAY_MS)
INITIAL_DAYS = _env_int('INITIAL_DAYS', 7)
REQUEST_TIMEOUT_S = _env_float('REQUEST_TIMEOUT_S', 10.0)
FRESHNESS_TIMEOUT_S = _env_float('FRESHNESS_TIMEOUT_S', 60.0)
RANGE_CACHE_SIZE = _env_int('RANGE_CACHE_SIZE', 256)
RELAYOUT_DEBOUNCE_S = _env_float('RELAYOUT_DEBOUNCE_S', 0.25)
API_BASE_URL = os.environ.get('API_BASE_URL', f'http://127.0.0.1:{PORT}')
