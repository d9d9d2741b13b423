import json
import logging
from datetime import datetime, timezone

from ..models import DiningTable

CHANNEL = "rt:table_map"

logger = logging.getLogger("tableside.hooks")


async def publish_table_state(redis_client, table: DiningTable) -> None:
    """Publish a table's occupancy to the real-time floor map channel."""
    payload = {
        "table_id": table.id,
        "name": table.name,
        "state": table.state,
        "ts": datetime.now(timezone.utc).timestamp(),
    }
    try:
        await redis_client.publish(CHANNEL, json.dumps(payload))
    except Exception as exc:  # best effort
        logger.warning("table map publish failed for %s: %s", table.name, exc)
