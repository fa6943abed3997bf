from __future__ import annotations

import argparse
import asyncio
import sys
from uuid import uuid4

from atelier.domain.models import ApiKey, User
from atelier.domain.roles import parse_account_status, parse_platform_role
from atelier.persistence.db import SessionLocal
from atelier.services.activity import ActivityChannel
from atelier.services.auth.api_keys import generate_api_key


def _build_parser() -> argparse.ArgumentParser:
    # Keep CLI arguments explicit to avoid accidental key misuse.
    parser = argparse.ArgumentParser(description="Create an API key for a user")
    parser.add_argument("--name", required=True, help="Key label for auditing")
    parser.add_argument("--user-id", default=None, help="Existing user id to attach")
    parser.add_argument("--username", default=None, help="Username for a new user")
    parser.add_argument("--email", default=None, help="Email for a new user")
    parser.add_argument("--role", default="user", help="Platform role: user|admin")
    parser.add_argument("--status", default="active", help="Account status for a new user")
    return parser


async def _create_key(args: argparse.Namespace) -> int:
    # Validate literals before writing them to the database.
    role = parse_platform_role(args.role)
    status = parse_account_status(args.status)
    user_id = args.user_id or uuid4().hex
    key_id, raw_key, key_prefix, key_hash = generate_api_key()

    async with SessionLocal() as session:
        user = await session.get(User, user_id)
        if user is None:
            if not args.username or not args.email:
                raise ValueError("--username and --email are required when creating a user")
            user = User(
                id=user_id,
                username=args.username,
                email=args.email,
                role=role.value,
                status=status.value,
            )
            session.add(user)
        elif user.role != role.value:
            user.role = role.value
        # Flush the user row before inserting API keys to satisfy FK constraints.
        await session.flush()

        session.add(
            ApiKey(
                id=key_id,
                user_id=user.id,
                key_prefix=key_prefix,
                key_hash=key_hash,
                name=args.name,
            )
        )
        await session.commit()

    activity = ActivityChannel(user_agent="scripts/create_api_key")
    activity.emit(
        action="api_key_created",
        entity_type="api_key",
        entity_id=key_id,
        user_id=user_id,
        metadata={"key_prefix": key_prefix, "key_name": args.name},
    )
    await activity.flush()

    print("API key created:")
    print(f"  user_id: {user_id}")
    print(f"  key_id: {key_id}")
    print(f"  key_prefix: {key_prefix}")
    print("  api_key: ")
    print(f"    {raw_key}")
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_create_key(args))
    except Exception as exc:  # noqa: BLE001 - surface provisioning failures clearly
        print(f"create_api_key failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
