#!/usr/bin/env python3
"""
Generate secure secrets for Octagon Oracle
Run this script to generate SECRET_KEY, WTF_CSRF_SECRET_KEY and the
shared secret the payment provider sends with settlement notifications
"""

import secrets


def generate_secrets():
    """Generate secure random keys for the application"""
    print("🔐 Generating secure secrets for Octagon Oracle...")
    print("=" * 50)

    for name in ("SECRET_KEY", "WTF_CSRF_SECRET_KEY", "PAYMENT_WEBHOOK_SECRET"):
        print(f"{name}={secrets.token_urlsafe(32)}")

    print("=" * 50)
    print("📝 Copy these values to your .env file")
    print("⚠️  Keep these secrets secure and never commit them to version control!")


if __name__ == "__main__":
    generate_secrets()
