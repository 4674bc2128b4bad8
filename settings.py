"""
Runtime configuration read from the environment (and a local .env file).
"""
import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "mobile_mania")

JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
JWT_ALGO = "HS256"

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_PUBLISHABLE_KEY = os.getenv("STRIPE_PUBLISHABLE_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
STRIPE_CURRENCY = os.getenv("STRIPE_CURRENCY", "inr")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "No-reply Mobile Mania <no-reply@mobilemania.shop>")
SHOP_NAME = "Mobile Mania"

# Order pricing policy
SHIPPING_PRICE = float(os.getenv("SHIPPING_PRICE", "50"))
FREE_SHIPPING_OVER = float(os.getenv("FREE_SHIPPING_OVER", "10000"))
TAX_RATE = float(os.getenv("TAX_RATE", "0.18"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 8000))
