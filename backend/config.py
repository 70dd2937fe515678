import os
from pathlib import Path
from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')


def _flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'business_ledger')
# Multi-document transactions need a replica set
MONGO_TRANSACTIONS = _flag('MONGO_TRANSACTIONS')

# JWT
JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY', 'change-me-in-production')
JWT_ALGORITHM = 'HS256'
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ.get('ACCESS_TOKEN_EXPIRE_MINUTES', '30'))

# Sequence allocator
SEQUENCE_MAX_RETRIES = int(os.environ.get('SEQUENCE_MAX_RETRIES', '5'))
SEQUENCE_RETRY_DELAY_MS = int(os.environ.get('SEQUENCE_RETRY_DELAY_MS', '100'))

# Reports
DASHBOARD_PROJECT_LIMIT = int(os.environ.get('DASHBOARD_PROJECT_LIMIT', '10'))
REPORT_PROJECT_LIMIT = int(os.environ.get('REPORT_PROJECT_LIMIT', '1000'))

# HTTP
CORS_ORIGINS = [o.strip() for o in os.environ.get('CORS_ORIGINS', '*').split(',') if o.strip()]
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
