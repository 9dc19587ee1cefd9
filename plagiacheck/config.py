import os


def _csv(value: str) -> list:
    return [item.strip() for item in value.split(",") if item.strip()]


def _normalize_db_url(url: str) -> str:
    """
    Normalize DATABASE_URL so SQLAlchemy loads the right DBAPI.
    We standardize on psycopg v3 driver ('+psycopg').
    """
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://") and "+psycopg://" not in url:
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def _default_db_url() -> str:
    db_path = os.path.join(os.path.dirname(__file__), "..", "instance", "plagiacheck.db")
    return f"sqlite:///{os.path.abspath(db_path)}"


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = _normalize_db_url(os.environ.get("DATABASE_URL", "")) or _default_db_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "").strip()
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "").strip()

    # Checkout verification tokens
    API_SECRET_KEY = os.getenv("API_SECRET_KEY", "")
    SUCCESS_TOKEN_WINDOW_SECONDS = int(os.getenv("SUCCESS_TOKEN_WINDOW_SECONDS", 1200))
    CANCEL_PACKAGE_TOKEN_WINDOW_SECONDS = int(os.getenv("CANCEL_PACKAGE_TOKEN_WINDOW_SECONDS", 3600))
    CANCEL_PROMPT_TOKEN_WINDOW_SECONDS = int(os.getenv("CANCEL_PROMPT_TOKEN_WINDOW_SECONDS", 360))
    TOKEN_CLOCK_SKEW_SECONDS = int(os.getenv("TOKEN_CLOCK_SKEW_SECONDS", 60))

    # Origins and redirect targets
    ALLOWED_ORIGINS = _csv(os.getenv(
        "ALLOWED_ORIGINS",
        "https://www.plagiacheck.online,https://plagiacheck.online,"
        "https://www.anione.me,https://anione.me,http://localhost:3000"
    ))
    PUBLIC_API_URL = os.getenv("PUBLIC_API_URL", "https://plagiacheck.online").rstrip("/")
    APP_BASE_URL = os.getenv("APP_BASE_URL", "https://anione.me").rstrip("/")
    PRICING_BASE_URL = os.getenv("PRICING_BASE_URL", "https://anione.me").rstrip("/")
    FALLBACK_URL = os.getenv("FALLBACK_URL", "https://www.plagiacheck.online")

    # Plans and affiliates
    PLAN_TOKEN_ALLOCATIONS = {"200Image": 200, "1000Image": 1000}
    DEFAULT_PLAN_ALLOCATION = int(os.getenv("DEFAULT_PLAN_ALLOCATION", 1000))
    AFFILIATE_DEFAULT_COMMISSION = int(os.getenv("AFFILIATE_DEFAULT_COMMISSION", 20))
    CONSECUTIVE_FAILURES_TO_CANCEL = int(os.getenv("CONSECUTIVE_FAILURES_TO_CANCEL", 2))

    # Optional payment notification hook
    PAYMENT_NOTIFY_URL = os.getenv("PAYMENT_NOTIFY_URL", "").strip()
    PAYMENT_NOTIFY_API_KEY = os.getenv("PAYMENT_NOTIFY_API_KEY", "")
    PAYMENT_NOTIFY_TIMEOUT = float(os.getenv("PAYMENT_NOTIFY_TIMEOUT", 5))
