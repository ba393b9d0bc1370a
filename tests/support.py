"""Shared fixtures for the unittest suites: settings, in-memory db, auth tokens."""
import hashlib
import hmac
import json
import time
from datetime import datetime, timezone

from jose import jwt
from sqlalchemy.orm import Session

from config.settings import Settings
from database import Base, build_engine, build_session_factory
from models.image import Image
from models.user import User

JWT_SECRET = "test-jwt-secret"
PROJECT_URL = "https://gallery-test.supabase.co"
STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
COINBASE_WEBHOOK_SECRET = "coinbase-shared-secret"

STRIPE_PRICE_IDS = {
    "standard": {"monthly": "price_standard_monthly", "yearly": "price_standard_yearly"},
    "premium": {"monthly": "price_premium_monthly", "yearly": "price_premium_yearly"},
    "commercial": {"monthly": "price_commercial_monthly", "yearly": "price_commercial_yearly"},
}
PAYPAL_PLAN_IDS = {
    "standard": {"monthly": "P-STD-M", "yearly": "P-STD-Y"},
    "premium": {"monthly": "P-PRE-M", "yearly": "P-PRE-Y"},
    "commercial": {"monthly": "P-COM-M", "yearly": "P-COM-Y"},
}


def make_settings(**overrides) -> Settings:
    values = dict(
        database_url="sqlite://",
        supabase_project_url=PROJECT_URL,
        supabase_jwt_secret=JWT_SECRET,
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=STRIPE_WEBHOOK_SECRET,
        stripe_price_ids=STRIPE_PRICE_IDS,
        paypal_client_id="paypal-client",
        paypal_client_secret="paypal-secret",
        paypal_webhook_id="WH-TEST",
        paypal_plan_ids=PAYPAL_PLAN_IDS,
        coinbase_api_key="cb-key",
        coinbase_webhook_secret=COINBASE_WEBHOOK_SECRET,
    )
    values.update(overrides)
    return Settings(**values)


def make_session(settings: Settings = None) -> Session:
    import models  # noqa: F401

    engine = build_engine(settings or make_settings())
    Base.metadata.create_all(bind=engine)
    return build_session_factory(engine)()


def add_user(db: Session, user_id: str = "user-1", email: str = "user@example.com") -> User:
    user = User(id=user_id, email=email)
    db.add(user)
    db.commit()
    return user


def add_image(db: Session, owner_id: str = "user-1", title: str = "Sunset", tags=None) -> Image:
    image = Image(
        user_id=owner_id,
        title=title,
        tags=tags or [],
        file_name=f"{title.lower()}.jpg",
        file_size=1024,
        file_type="image/jpeg",
        storage_path=f"{owner_id}/{title.lower()}.jpg",
        url=f"https://cdn.example.com/{owner_id}/{title.lower()}.jpg",
    )
    db.add(image)
    db.commit()
    return image


def fixed_clock(*args):
    moment = datetime(*args, tzinfo=timezone.utc)
    return lambda: moment


def auth_header(user_id: str = "user-1", email: str = "user@example.com") -> dict:
    token = jwt.encode(
        {
            "sub": user_id,
            "email": email,
            "aud": "authenticated",
            "iss": f"{PROJECT_URL}/auth/v1",
            "exp": int(time.time()) + 3600,
        },
        JWT_SECRET,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


def stripe_signature(payload: bytes, secret: str = STRIPE_WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def coinbase_signature(payload: bytes, secret: str = COINBASE_WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def to_body(event: dict) -> bytes:
    return json.dumps(event).encode()


def stripe_subscription(
    sub_id: str = "sub_1",
    *,
    price_id: str = "price_premium_monthly",
    status: str = "active",
    customer: str = "cus_1",
    metadata: dict = None,
) -> dict:
    return {
        "id": sub_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "metadata": metadata if metadata is not None else {"userId": "user-1"},
        "cancel_at_period_end": False,
        "items": {
            "data": [{
                "price": {"id": price_id},
                "current_period_start": 1767225600,
                "current_period_end": 1769904000,
            }],
        },
    }


def stripe_event(event_type: str, obj: dict, event_id: str = "evt_1") -> dict:
    return {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}
