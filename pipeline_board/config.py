"""
Configuration et utilitaires partagés
"""

import os
import logging
from datetime import datetime, timezone
from dotenv import load_dotenv
from pathlib import Path

# Charger .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')


def env_float(name: str, default: float) -> float:
    """Lit un float depuis l'environnement (default si absent ou invalide)"""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def env_int(name: str, default: int) -> int:
    """Lit un int depuis l'environnement (default si absent ou invalide)"""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# CRM data API
BACKEND_URL = os.environ.get('BACKEND_URL', 'http://localhost:5000')

# Timeouts (seconds)
PIPELINE_FETCH_TIMEOUT = env_float('PIPELINE_FETCH_TIMEOUT', 10.0)
STAGE_UPDATE_TIMEOUT = env_float('STAGE_UPDATE_TIMEOUT', 30.0)
AUTOMATION_TIMEOUT = env_float('AUTOMATION_TIMEOUT', 15.0)

# Client-side audit trail
AUDIT_TRAIL_LIMIT = env_int('AUDIT_TRAIL_LIMIT', 5)

# Raw pipeline cache (0 = disabled)
PIPELINE_CACHE_TTL = env_float('PIPELINE_CACHE_TTL', 30.0)

# Reasons sent with stage changes
KANBAN_MOVE_REASON = os.environ.get('KANBAN_MOVE_REASON', 'Moved via Kanban board')
QUICK_REJECT_REASON = os.environ.get('QUICK_REJECT_REASON', 'Rejected via quick button on Kanban board')


# ==================== HELPERS ====================

def now_iso() -> str:
    """Retourne la date/heure actuelle en ISO"""
    return datetime.now(timezone.utc).isoformat()


def configure_logging(level: int = logging.INFO):
    """Format de log partagé par tous les services"""
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
