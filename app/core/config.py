import os
from dotenv import load_dotenv

# Loads .env from the project root
load_dotenv()


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid integer for {name}: {raw}") from exc


_database_url = os.getenv("DATABASE_URL", "sqlite:///./pos_checkout.db")
if _database_url.startswith("postgres://"):
    _database_url = _database_url.replace("postgres://", "postgresql://", 1)
DATABASE_URL = _database_url

ENV = os.getenv("ENVIRONMENT", os.getenv("ENV", "dev"))
ENV_NORMALIZED = ENV.strip().lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_PROD = ENV_NORMALIZED in {"prod", "production"}
IS_TEST = ENV_NORMALIZED == "test"

# CORS (staff UI)
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]

# Auth (JWT issued by the hosting platform)
AUTH_JWT_SECRET = os.getenv("AUTH_JWT_SECRET", "")
AUTH_JWT_ALGORITHM = os.getenv("AUTH_JWT_ALGORITHM", "HS256")
AUTH_JWT_AUDIENCE = os.getenv("AUTH_JWT_AUDIENCE", "authenticated").strip()

# Bank transfer webhook
BANK_WEBHOOK_SECRET = os.getenv("BANK_WEBHOOK_SECRET", "")
BANK_WEBHOOK_LOOKBACK_LIMIT = _env_int("BANK_WEBHOOK_LOOKBACK_LIMIT", 400)

# Loyalty: 1 point = 1000 VND when redeemed, 1 point earned per 10,000 VND
LOYALTY_POINT_VALUE = _env_int("LOYALTY_POINT_VALUE", 1000)
LOYALTY_EARN_DIVISOR = _env_int("LOYALTY_EARN_DIVISOR", 10000)

RECEIPT_CODE_PREFIX = os.getenv("RECEIPT_CODE_PREFIX", "IC").strip() or "IC"

TRANSFER_BANK_BIN = os.getenv("TRANSFER_BANK_BIN", "").strip()
TRANSFER_ACCOUNT_NUMBER = os.getenv("TRANSFER_ACCOUNT_NUMBER", "").strip()
TRANSFER_QR_TEMPLATE = os.getenv("TRANSFER_QR_TEMPLATE", "compact2").strip() or "compact2"

WALK_IN_CUSTOMER_NAME = os.getenv("WALK_IN_CUSTOMER_NAME", "Khách lẻ")
