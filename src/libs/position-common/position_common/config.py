# src/libs/position-common/position_common/config.py
import os
from dotenv import load_dotenv

# Load environment variables from a .env file for local development.
load_dotenv()


# Database Configurations
POSTGRES_USER = os.getenv("POSTGRES_USER", "user")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "password")
POSTGRES_DB = os.getenv("POSTGRES_DB", "positions_db")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "postgres")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")

# Recalculation Engine
POSITION_STATE_KEY = os.getenv("POSITION_STATE_KEY", "POSITION_CALCULATION")
BATCH_WORKER_THREADS = int(os.getenv("BATCH_WORKER_THREADS", "1"))

# Web
SERVICE_PORT = int(os.getenv("SERVICE_PORT", "8080"))
