"""Mint a local access token for manual API testing.

Usage:
    python scripts/issue_dev_token.py <user-uuid>
"""

import sys
import uuid

from opa.auth.service import create_access_token
from opa.config import settings


def main() -> None:
    if len(sys.argv) != 2:
        print("Usage: python scripts/issue_dev_token.py <user-uuid>")
        sys.exit(1)
    if settings.is_production:
        print("Error: refusing to mint tokens in production.")
        sys.exit(1)
    try:
        user_id = uuid.UUID(sys.argv[1])
    except ValueError:
        print(f"Error: '{sys.argv[1]}' is not a valid UUID.")
        sys.exit(1)
    print(create_access_token(str(user_id)))


if __name__ == "__main__":
    main()
