#!/usr/bin/env python3
"""Create an already-verified account without the OTP round trip."""
import argparse
import sys
from pathlib import Path

project_root = Path(__file__).resolve().parents[1]
sys.path.append(str(project_root))

from pydantic import ValidationError

from retail_api.database import SessionLocal
from retail_api.schemas.auth import CreateUserAccountRequest
from retail_api.services.auth_service import AuthService
from retail_api.utils.email import ConsoleNotifier
from retail_api.utils.exceptions import AppException


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a verified user account")
    parser.add_argument("--email", required=True, help="Login email")
    parser.add_argument("--password", required=True, help="Initial password")
    parser.add_argument("--first-name", required=True)
    parser.add_argument("--last-name", required=True)
    parser.add_argument("--phone", default=None)
    args = parser.parse_args()

    try:
        data = CreateUserAccountRequest(
            email=args.email,
            password=args.password,
            firstName=args.first_name,
            lastName=args.last_name,
            phone=args.phone,
        )
    except ValidationError as e:
        print(f"Invalid input:\n{e}")
        return 2

    db = SessionLocal()
    try:
        user = AuthService(ConsoleNotifier()).create_user_account(db, data)
    except AppException as e:
        print(f"Error: {e.message}")
        return 1
    finally:
        db.close()

    print(f"Created user {user['id']} <{user['email']}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
