import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()

# Fund Unlock
UNLOCK_FUNDING_THRESHOLD_PERCENT = float(os.getenv("UNLOCK_FUNDING_THRESHOLD_PERCENT", 50))

# Investments
MINIMUM_INVESTMENT_AMOUNT = Decimal(os.getenv("MINIMUM_INVESTMENT_AMOUNT", "10"))
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "usd")

# External calls (seconds)
EXTERNAL_TIMEOUT_SECONDS = float(os.getenv("EXTERNAL_TIMEOUT_SECONDS", 10))

# An in-progress transfer reservation older than this may be reclaimed by an approve retry
TRANSFER_RESERVATION_TIMEOUT_SECONDS = float(
    os.getenv("TRANSFER_RESERVATION_TIMEOUT_SECONDS", EXTERNAL_TIMEOUT_SECONDS * 2)
)

# Stripe Connect transfers
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_API_BASE = os.getenv("STRIPE_API_BASE", "https://api.stripe.com/v1")

# Payment webhook shared secret
PAYMENT_WEBHOOK_SECRET = os.getenv("PAYMENT_WEBHOOK_SECRET", "")

# Catalog lookups used by metadata verification
SPOTIFY_CLIENT_ID = os.getenv("SPOTIFY_CLIENT_ID", "")
SPOTIFY_CLIENT_SECRET = os.getenv("SPOTIFY_CLIENT_SECRET", "")
YOUTUBE_API_KEY = os.getenv("YOUTUBE_API_KEY", "")

# Admin seed account
ADMIN_EMAIL = os.getenv("ADMIN_USER", "admin@encore.fm")
