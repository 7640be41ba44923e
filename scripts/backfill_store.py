from __future__ import annotations

import argparse
import asyncio
import logging

from packages.shared.schemas.events import EventKindV1
from services.api.app.db.init_db import init_db
from services.api.app.services.kv_factory import get_kv_store
from services.api.app.services.store import RecordStore, VersionCounter
from services.api.app.services.waiver_base import WaiverClientError
from services.api.app.services.waiver_factory import get_waiver_client
from services.api.app.settings import get_settings
from services.api.app.waivers.normalizer import normalize
from services.api.app.waivers.ranges import parse_range

logger = logging.getLogger("backfill_store")


async def backfill(from_value: str | None, to_value: str | None, days: int, dry_run: bool) -> int:
    settings = get_settings()
    missing = settings.missing_waiver_config()
    if missing:
        logger.error(f"Missing configuration: {', '.join(missing)}")
        return 2

    if settings.kv_backend in ("sql", "sqlite", "db"):
        init_db()

    time_range = parse_range(from_value, to_value, default_days=days)
    kv = get_kv_store(settings)
    client = get_waiver_client(settings)
    store = RecordStore(kv, key=settings.stream_key, capacity=settings.store_capacity)

    appended = 0
    try:
        for kind, template_id in (
            (EventKindV1.LIABILITY, settings.liability_template_id),
            (EventKindV1.INTAKE, settings.intake_template_id),
        ):
            summaries = await client.list_waivers(
                template_id, time_range.start, time_range.end, max_pages=settings.max_pages
            )
            logger.info(f"{kind.value}: {len(summaries)} waivers upstream")

            for summary in summaries:
                waiver_id = str(summary.get("waiverId") or "")
                if not waiver_id:
                    continue
                detail = summary
                if kind == EventKindV1.INTAKE:
                    detail = await client.fetch_waiver(waiver_id)
                event = normalize(
                    detail, kind, template_id=template_id, field_ids=settings.field_ids
                )
                if dry_run:
                    print(f"{event.type.value} {event.waiver_id} {event.signed_on}")
                    continue
                if await store.append(event) is not None:
                    appended += 1

        if appended:
            await VersionCounter(kv, key=settings.version_key).bump()
    except WaiverClientError as e:
        logger.error(f"Backfill stopped: {e}")
        return 1
    finally:
        await client.aclose()
        await kv.close()

    print(f"Appended {appended} events to {settings.stream_key}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Load recent waivers into the record store")
    parser.add_argument("--from", dest="from_value", default=None, help="YYYY-MM-DD or ISO time")
    parser.add_argument("--to", dest="to_value", default=None, help="YYYY-MM-DD or ISO time")
    parser.add_argument("--days", type=int, default=1, help="lookback when no range is given")
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    return asyncio.run(backfill(args.from_value, args.to_value, args.days, args.dry_run))


if __name__ == "__main__":
    raise SystemExit(main())
