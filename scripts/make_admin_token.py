"""
Print an admin bearer token for the dashboard and admin endpoints.
Run: python scripts/make_admin_token.py admin@example.com [--minutes 120]
"""
import argparse
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.services.auth import ROLE_ADMIN, create_access_token  # noqa: E402


def main():
    parser = argparse.ArgumentParser(description="Issue an admin JWT")
    parser.add_argument("email")
    parser.add_argument("--subject", default=None, help="Token subject (defaults to the email)")
    parser.add_argument("--minutes", type=int, default=None, help="Lifetime; defaults to JWT_ACCESS_TOKEN_EXPIRE_MINUTES")
    args = parser.parse_args()

    email = args.email.strip().lower()
    print(create_access_token(args.subject or email, email, role=ROLE_ADMIN, expires_minutes=args.minutes))


if __name__ == "__main__":
    main()
