from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timezone

from sqlalchemy import update

from atelier.domain.models import ApiKey
from atelier.persistence.db import SessionLocal
from atelier.services.activity import ActivityChannel


def _build_parser() -> argparse.ArgumentParser:
    # Keep CLI usage minimal to avoid revoking the wrong key.
    parser = argparse.ArgumentParser(description="Revoke an API key by id")
    parser.add_argument("key_id", help="API key id to revoke")
    return parser


async def _revoke_key(key_id: str) -> int:
    # Mark the key revoked without deleting it; revoked keys resolve to no principal.
    async with SessionLocal() as session:
        api_key = await session.get(ApiKey, key_id)
        if api_key is None:
            raise ValueError("API key not found")
        await session.execute(
            update(ApiKey)
            .where(ApiKey.id == key_id)
            .values(revoked_at=datetime.now(timezone.utc))
        )
        await session.commit()
        user_id = api_key.user_id

    activity = ActivityChannel(user_agent="scripts/revoke_api_key")
    activity.emit(
        action="api_key_revoked",
        entity_type="api_key",
        entity_id=key_id,
        user_id=user_id,
    )
    await activity.flush()
    print(f"Revoked API key {key_id}")
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_revoke_key(args.key_id))
    except Exception as exc:  # noqa: BLE001 - surface operator errors clearly
        print(f"revoke_api_key failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
