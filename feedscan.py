import logging
import time
from dataclasses import dataclass

from lbcheck import build_key
from srcapi import Run
from wrledger import build_entry

logger = logging.getLogger(__name__)


@dataclass
class ScanStats:
    pages: int = 0
    seen: int = 0
    checked: int = 0
    keys_processed: int = 0


class FeedScanner:
    """Walks the verified-runs feed newest first down to a resume floor."""

    def __init__(self, client, verifier, reconstructor, ledger, variables=None,
                 page_size=200, overlap=24 * 3600, polite_every=40, polite_delay=0.0):
        self.client = client
        self.verifier = verifier
        self.reconstructor = reconstructor
        self.ledger = ledger
        self.variables = variables
        self.page_size = page_size
        self.overlap = overlap
        self.polite_every = polite_every
        self.polite_delay = polite_delay
        self.stats = ScanStats()

    def scan_floor(self, last_seen, retention_cutoff) -> int:
        if last_seen > 0:
            floor = last_seen - self.overlap
        else:
            floor = retention_cutoff - self.overlap
        return max(floor, 0)

    def scan(self, last_seen, retention_cutoff) -> int:
        self.stats = ScanStats()
        new_last_seen = last_seen
        floor = self.scan_floor(last_seen, retention_cutoff)
        processed_keys = set()
        offset = 0

        while True:
            self.stats.pages += 1
            logger.debug("Runs page: offset=%d max=%d scan_floor=%d prune_cutoff=%d last_seen=%d",
                         offset, self.page_size, floor, retention_cutoff, last_seen)
            page = self.client.runs_page(offset, self.page_size)
            if not page:
                logger.debug("No runs page at offset=%d. Stopping.", offset)
                break

            stop = False
            for obj in page:
                run = Run.from_json(obj)
                if run is None or run.verified_epoch is None:
                    continue

                self.stats.seen += 1
                new_last_seen = max(new_last_seen, run.verified_epoch)

                if run.verified_epoch < floor:
                    stop = True
                    break
                if run.verified_epoch < retention_cutoff:
                    continue

                self.stats.checked += 1
                self.check_run(run, retention_cutoff, processed_keys)

                if self.polite_delay and self.polite_every and self.stats.checked % self.polite_every == 0:
                    time.sleep(self.polite_delay)

            if stop:
                logger.debug("Stopping scan: reached scan_floor (oldest run < scan_floor)")
                break
            offset += len(page)
            if len(page) < self.page_size:
                break

        logger.debug("Scan complete: pages=%d seen=%d checked=%d keys_processed=%d new_last_seen=%d",
                     self.stats.pages, self.stats.seen, self.stats.checked,
                     self.stats.keys_processed, new_last_seen)
        return new_last_seen

    def check_run(self, run, retention_cutoff, processed_keys):
        if not run.id or self.ledger.has(run.id):
            return
        if not run.game_id or not run.category_id:
            return
        if not self.verifier.is_current_wr(run.id, run.game_id, run.category_id, run.level_id, run.values):
            return

        key = build_key(run.game_id, run.category_id, run.level_id, run.values)
        if key in processed_keys:
            return
        processed_keys.add(key)
        self.stats.keys_processed += 1

        logger.debug("New current WR detected; backfilling history for key: %s", key)
        self.reconstructor.reconstruct(run.game_id, run.category_id, run.level_id,
                                       run.values, retention_cutoff)

        # the history query can fail; the confirmed #1 still belongs in the ledger
        if not self.ledger.has(run.id):
            self.ledger.insert(build_entry(run, run.verified_epoch, run.verify_date, self.variables))
