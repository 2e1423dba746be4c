from __future__ import annotations

import os
import warnings
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

ROOT_DIR = Path(__file__).resolve().parents[1]

# SQLite local em desenvolvimento; em produção postgresql+psycopg2://...
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{ROOT_DIR / 'cadastro_facil.sqlite'}")

APP_ENV = os.getenv("APP_ENV", "development")
IS_PRODUCTION = APP_ENV == "production"

JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET:
    warnings.warn("JWT_SECRET não definido: usando chave de desenvolvimento.", RuntimeWarning, stacklevel=2)
    JWT_SECRET = "CHANGE_ME_DEV_SECRET"
JWT_ALG = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "1440"))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",") if o.strip()]
DOMAIN = os.getenv("DOMAIN")
if IS_PRODUCTION and DOMAIN:
    CORS_ORIGINS = [DOMAIN]

DB_CONNECT_RETRIES = int(os.getenv("DB_CONNECT_RETRIES", "10"))

MASTER_NOME = os.getenv("MASTER_NOME", "Master Admin")
MASTER_EMAIL = os.getenv("MASTER_EMAIL", "master@sistema.com")
MASTER_PASSWORD = os.getenv("MASTER_PASSWORD", "master123")

COMMUNICATION_TIMEOUT = float(os.getenv("COMMUNICATION_TIMEOUT", "10"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
