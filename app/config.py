import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./hits_billing.db")
# BYPASSRLS role the reconciliation writes switch to (login role must be a member)
DB_PRIVILEGED_ROLE = os.getenv("DB_PRIVILEGED_ROLE", "service_role")

# Supabase-issued access tokens (HS256)
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET")
SUPABASE_JWT_AUDIENCE = os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated")

# Stripe Configuration
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
# Page sizes for charge discovery (customer scan / broad recent scan)
STRIPE_CUSTOMER_SCAN_LIMIT = int(os.getenv("STRIPE_CUSTOMER_SCAN_LIMIT", "20"))
STRIPE_RECENT_SCAN_LIMIT = int(os.getenv("STRIPE_RECENT_SCAN_LIMIT", "50"))

# Google Maps Distance Matrix (server-side key)
GOOGLE_MAPS_BACKEND_KEY = os.getenv("GOOGLE_MAPS_BACKEND_KEY") or os.getenv("GOOGLE_MAPS_API_KEY")

# Frontend base URL for redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Rate limiting for the polling endpoints
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
RECONCILE_RATE_LIMIT_PER_MINUTE = int(os.getenv("RECONCILE_RATE_LIMIT_PER_MINUTE", "120"))

# Platform pricing (defaults mirror the admin platform settings)
CURRENCY = os.getenv("CURRENCY", "USD")
FIRST_HOUR_RATE = float(os.getenv("FIRST_HOUR_RATE", "95.00"))
ADDITIONAL_HALF_HOUR_RATE = float(os.getenv("ADDITIONAL_HALF_HOUR_RATE", "45.00"))
TAX_RATE = float(os.getenv("TAX_RATE", "0.07"))  # NC: 4.75% state + 2.25% Cumberland County
SPECIALIST_HOURLY_RATE = float(os.getenv("SPECIALIST_HOURLY_RATE", "30.00"))

# Travel: first N miles free, then per-mile rates (client rate > reimbursement rate)
TRAVEL_INCLUDED_MILES = float(os.getenv("TRAVEL_INCLUDED_MILES", "20"))
TRAVEL_CLIENT_RATE_PER_MILE = float(os.getenv("TRAVEL_CLIENT_RATE_PER_MILE", "1.00"))
TRAVEL_SPECIALIST_RATE_PER_MILE = float(os.getenv("TRAVEL_SPECIALIST_RATE_PER_MILE", "0.60"))
HQ_COORDINATES = os.getenv("HQ_COORDINATES", "34.892007,-78.880128")

# Background reconciliation worker
RECONCILE_MAX_ATTEMPTS = int(os.getenv("RECONCILE_MAX_ATTEMPTS", "10"))
RECONCILE_RETRY_INTERVAL_SECONDS = float(os.getenv("RECONCILE_RETRY_INTERVAL_SECONDS", "1.0"))
MEMBERSHIP_SYNC_MIN_AGE_SECONDS = float(os.getenv("MEMBERSHIP_SYNC_MIN_AGE_SECONDS", "30"))

# Redis (rate limiting and the arq worker queue)
REDIS_URL = os.getenv("REDIS_URL")
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD")
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
REDIS_SSL = os.getenv("REDIS_SSL", "false").lower() == "true"
