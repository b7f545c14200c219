import logging
import math
import time
from dataclasses import dataclass
from typing import List, Optional

from srcapi import Run, clean_filters, get_obj
from wrledger import WrLedger, WrEntry, build_entry

logger = logging.getLogger(__name__)

EPSILON = 1e-6


@dataclass
class RankedRun:
    run_id: str
    primary_t: float
    verified_epoch: Optional[int] = None


def replay_record_chain(candidates, baseline=math.inf) -> List[RankedRun]:
    """Return the runs that were #1 (or tied #1) at the moment they were verified.

    `candidates` must already be in verification order. With an infinite
    baseline the first candidate seeds the record, since nothing older is
    known to compare against.
    """
    chain = []
    best = baseline
    for cand in candidates:
        if not math.isfinite(best):
            best = cand.primary_t
            chain.append(cand)
        elif cand.primary_t < best - EPSILON:
            best = cand.primary_t
            chain.append(cand)
        elif abs(cand.primary_t - best) <= EPSILON:
            chain.append(cand)
    return chain


class HistoryReconstructor:
    def __init__(self, client, ledger: WrLedger, variables=None, depth=200,
                 detail_delay=0.0, candidate_delay=0.0):
        self.client = client
        self.ledger = ledger
        self.variables = variables
        self.depth = depth
        self.detail_delay = detail_delay
        self.candidate_delay = candidate_delay

    def ranked_runs(self, game_id, category_id, level_id, filters) -> Optional[List[RankedRun]]:
        slots = self.client.leaderboard(game_id, category_id, level_id, filters, self.depth)
        if slots is None:
            return None
        ranked = []
        for slot in slots:
            run = Run.from_json(get_obj(slot, "run"))
            if run is None or not run.id or run.primary_t is None:
                continue
            ranked.append(RankedRun(run.id, run.primary_t, run.verified_epoch))
        return ranked

    def resolve_missing_dates(self, ranked: List[RankedRun]):
        for info in ranked:
            if info.verified_epoch is not None:
                continue
            run = Run.from_json(self.client.run_details(info.run_id))
            if run is not None and run.verified_epoch is not None:
                info.verified_epoch = run.verified_epoch
            if self.detail_delay:
                time.sleep(self.detail_delay)

    def reconstruct(self, game_id, category_id, level_id, filters, cutoff) -> List[WrEntry]:
        filters = clean_filters(filters)
        ranked = self.ranked_runs(game_id, category_id, level_id, filters)
        if not ranked:
            return []
        self.resolve_missing_dates(ranked)

        baseline = min(
            (r.primary_t for r in ranked if r.verified_epoch is not None and r.verified_epoch < cutoff),
            default=math.inf,
        )
        candidates = sorted(
            (r for r in ranked if r.verified_epoch is not None and r.verified_epoch >= cutoff),
            key=lambda r: r.verified_epoch,
        )
        if not candidates:
            return []
        if not math.isfinite(baseline):
            logger.debug("No pre-window baseline for %s/%s; seeding from first in-window run",
                         game_id, category_id)

        added = []
        for cand in replay_record_chain(candidates, baseline):
            if self.ledger.has(cand.run_id):
                continue
            run = Run.from_json(self.client.run_details(cand.run_id, embed=True))
            if run is not None and run.verified_epoch is not None and run.verified_epoch >= cutoff:
                entry = build_entry(run, run.verified_epoch, run.verify_date, self.variables)
                if entry is not None and self.ledger.insert(entry):
                    added.append(entry)
            # one pause per detail fetch, successful or not
            if self.candidate_delay:
                time.sleep(self.candidate_delay)
        return added
