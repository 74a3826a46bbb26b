"""
Application configuration and paths.
"""
import os
from pathlib import Path

# Application identity
APP_NAME = 'Briefcast'
APP_VERSION = '0.1.0'

# Server configuration
SERVER_HOST = os.environ.get('BRIEFCAST_HOST', '127.0.0.1')
SERVER_PORT = int(os.environ.get('BRIEFCAST_PORT', '5112'))

# Storage root for the database and per-job working directories
STORAGE_DIR = Path(os.environ.get('BRIEFCAST_STORAGE_DIR', str(Path.home() / '.briefcast')))

# Database configuration
DATABASE_PATH = STORAGE_DIR / 'briefcast.db'
DATABASE_URL = os.environ.get('BRIEFCAST_DATABASE_URL', f'sqlite+aiosqlite:///{DATABASE_PATH}')

# Podcast audio storage (one working directory per job)
PODCAST_DIR = STORAGE_DIR / 'podcasts'

# Static assets such as background music beds
ASSETS_DIR = STORAGE_DIR / 'assets'

# Job processor
PODCAST_POLL_INTERVAL_SECONDS = float(os.environ.get('PODCAST_POLL_INTERVAL_SECONDS', '10'))
PODCAST_MAX_CONCURRENT_JOBS = int(os.environ.get('PODCAST_MAX_CONCURRENT_JOBS', '1'))
PODCAST_STALE_THRESHOLD_MINUTES = int(os.environ.get('PODCAST_STALE_THRESHOLD_MINUTES', '30'))
PODCAST_DRAIN_TIMEOUT_SECONDS = float(os.environ.get('PODCAST_DRAIN_TIMEOUT_SECONDS', '120'))
PODCAST_CLEANUP_INTERVAL_SECONDS = float(os.environ.get('PODCAST_CLEANUP_INTERVAL_SECONDS', '3600'))
PODCAST_EXPIRATION_HOURS = int(os.environ.get('PODCAST_EXPIRATION_HOURS', '72'))

# Speech synthesis
OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY')
OPENAI_TTS_MODEL = os.environ.get('OPENAI_TTS_MODEL', 'tts-1-hd')
PODCAST_MAX_CONCURRENT_TTS = int(os.environ.get('PODCAST_MAX_CONCURRENT_TTS', '3'))
PROVIDER_TIMEOUT_SECONDS = float(os.environ.get('PROVIDER_TIMEOUT_SECONDS', '60'))
PROVIDER_MAX_RETRIES = int(os.environ.get('PROVIDER_MAX_RETRIES', '3'))

# Script generation
LLM_MODEL = os.environ.get('LLM_MODEL', 'gpt-4o')
LLM_DEFAULT_TEMPERATURE = 0.8

# Optional prompt registry (JSON file); built-in prompts are used when unset
PROMPTS_FILE = os.environ.get('BRIEFCAST_PROMPTS_FILE')

# Audio assembly
FFMPEG_PATH = os.environ.get('FFMPEG_PATH', 'ffmpeg')
FFPROBE_PATH = os.environ.get('FFPROBE_PATH', 'ffprobe')
PAUSE_BETWEEN_SPEAKERS_MS = int(os.environ.get('PAUSE_BETWEEN_SPEAKERS_MS', '500'))
OUTPUT_BITRATE = os.environ.get('OUTPUT_BITRATE', '192k')
OUTPUT_SAMPLE_RATE = 44100
OUTPUT_CHANNELS = 2
NORMALIZE_AUDIO = os.environ.get('NORMALIZE_AUDIO', 'true').lower() == 'true'

# Broadcast loudness targets (EBU R128 style)
LOUDNESS_TARGET_I = -16.0
LOUDNESS_TARGET_TP = -1.5
LOUDNESS_TARGET_LRA = 11.0

# Background music bed
BACKGROUND_MUSIC_ENABLED = os.environ.get('BACKGROUND_MUSIC_ENABLED', 'false').lower() == 'true'
BACKGROUND_MUSIC_PATH = Path(os.environ.get('BACKGROUND_MUSIC_PATH', str(ASSETS_DIR / 'background.mp3')))
BACKGROUND_MUSIC_VOLUME = float(os.environ.get('BACKGROUND_MUSIC_VOLUME', '0.15'))


def ensure_directories():
    """Create required directories if they don't exist."""
    STORAGE_DIR.mkdir(parents=True, exist_ok=True)
    PODCAST_DIR.mkdir(parents=True, exist_ok=True)
    ASSETS_DIR.mkdir(parents=True, exist_ok=True)
