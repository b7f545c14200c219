import logging
import time
from typing import List

from srcapi import Run
from wrconfig import DAY

logger = logging.getLogger(__name__)


def collect_current_records(client, verifier, days=7, limit=50, now=None,
                            page_size=200, delay=0.0) -> List[Run]:
    """Newest verified runs from the last `days` days that still hold #1."""
    if limit <= 0:
        return []
    now = int(time.time()) if now is None else now
    cutoff = now - days * DAY

    rows = []
    offset = 0
    while len(rows) < limit:
        page = client.runs_page(offset, page_size)
        if not page:
            break

        stop = False
        for obj in page:
            if len(rows) >= limit:
                break
            run = Run.from_json(obj)
            if run is None or run.verified_epoch is None:
                continue
            if run.verified_epoch < cutoff:
                stop = True
                break
            if not run.id or not run.game_id or not run.category_id:
                continue
            if verifier.is_current_wr(run.id, run.game_id, run.category_id, run.level_id, run.values):
                rows.append(run)
            if delay:
                time.sleep(delay)

        if stop:
            break
        offset += len(page)
        if len(page) < page_size:
            break

    logger.debug("Weekly collection: %d current #1 runs in the last %d days", len(rows), days)
    return rows
