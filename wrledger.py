import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from srcapi import Player, Run, get_number, get_str

logger = logging.getLogger(__name__)


@dataclass
class WrEntry:
    run_id: str
    verified_epoch: int
    verified_iso: str = ""
    game: str = ""
    game_cover: str = ""
    category: str = ""
    level: str = ""
    subcats: str = ""
    primary_t: Optional[float] = None
    players: str = ""
    players_data: Optional[List[Dict[str, str]]] = None
    weblink: str = ""

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "run_id": self.run_id,
            "verified_epoch": self.verified_epoch,
            "verified_iso": self.verified_iso,
            "game": self.game,
            "game_cover": self.game_cover,
            "category": self.category,
            "level": self.level,
            "subcats": self.subcats,
            "primary_t": self.primary_t if self.primary_t is not None else -1,
            "players": self.players,
        }
        if self.players_data is not None:
            d["players_data"] = self.players_data
        d["weblink"] = self.weblink
        return d

    @classmethod
    def from_dict(cls, d) -> Optional["WrEntry"]:
        run_id = get_str(d, "run_id")
        if not run_id:
            return None
        epoch = get_number(d, "verified_epoch")
        primary_t = get_number(d, "primary_t")
        players_data = d.get("players_data")
        if isinstance(players_data, list):
            players_data = [
                {k: get_str(p, k) or "" for k in ("name", "weblink", "image")}
                for p in players_data if isinstance(p, dict)
            ]
        else:
            players_data = None
        return cls(
            run_id=run_id,
            verified_epoch=int(epoch) if epoch is not None else 0,
            verified_iso=get_str(d, "verified_iso") or "",
            game=get_str(d, "game") or "",
            game_cover=get_str(d, "game_cover") or "",
            category=get_str(d, "category") or "",
            level=get_str(d, "level") or "",
            subcats=get_str(d, "subcats") or "",
            primary_t=primary_t if primary_t is not None and primary_t >= 0 else None,
            players=get_str(d, "players") or "",
            players_data=players_data,
            weblink=get_str(d, "weblink") or "",
        )


def players_data_of(players: List[Player]) -> Optional[List[Dict[str, str]]]:
    return [p.to_dict() for p in players] or None


def build_entry(run: Run, verified_epoch: int, verified_iso: str, variables=None) -> Optional[WrEntry]:
    """Snapshot an (embedded) run into a ledger entry; None when ids are missing."""
    if not run.id or not run.game_id or not run.category_id:
        return None
    if run.level_id:
        level = run.level_name or run.level_id
    else:
        level = ""
    subcats = variables.label(run.category_id, run.values) if variables is not None else ""
    return WrEntry(
        run_id=run.id,
        verified_epoch=verified_epoch,
        verified_iso=verified_iso or "",
        game=run.game_name or run.game_id,
        game_cover=run.game_cover,
        category=run.category_name or run.category_id,
        level=level,
        subcats=subcats,
        primary_t=run.primary_t,
        players=", ".join(p.name for p in run.players),
        players_data=players_data_of(run.players),
        weblink=run.weblink,
    )


class WrLedger:
    """Insertion-ordered WR entries, at most one per run id."""

    def __init__(self, entries=None):
        self.entries: List[WrEntry] = []
        self._ids = set()
        for entry in entries or []:
            self.insert(entry)

    def __len__(self):
        return len(self.entries)

    def __iter__(self) -> Iterator[WrEntry]:
        return iter(self.entries)

    def has(self, run_id) -> bool:
        return run_id in self._ids

    def insert(self, entry: WrEntry) -> bool:
        if entry is None or self.has(entry.run_id):
            return False
        self.entries.append(entry)
        self._ids.add(entry.run_id)
        return True

    def prune(self, cutoff: int) -> int:
        kept = [e for e in self.entries if e.verified_epoch >= cutoff]
        removed = len(self.entries) - len(kept)
        self.entries = kept
        self._ids = {e.run_id for e in kept}
        return removed

    def sorted_newest_first(self) -> List[WrEntry]:
        # sorted() is stable, so equal instants keep insertion order
        return sorted(self.entries, key=lambda e: e.verified_epoch, reverse=True)

    def sort_newest_first(self):
        self.entries = self.sorted_newest_first()

    def to_json(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self.entries]

    @classmethod
    def from_json(cls, doc) -> "WrLedger":
        if not isinstance(doc, list):
            return cls()
        return cls(WrEntry.from_dict(d) for d in doc if isinstance(d, dict))

    @classmethod
    def load(cls, path) -> "WrLedger":
        return cls.from_json(read_json(path))

    def save(self, path):
        write_json(path, self.to_json())


def read_json(path) -> Optional[Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable %s: %s", path, e)
        return None


def write_json(path, doc):
    path = Path(path)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(doc, f, indent=2, ensure_ascii=False)
        f.write("\n")


def load_last_seen(path) -> int:
    doc = read_json(path)
    value = get_number(doc, "last_seen_epoch")
    if value is None or value < 0:
        return 0
    return int(value)


def save_last_seen(path, last_seen_epoch: int):
    write_json(path, {"last_seen_epoch": int(last_seen_epoch)})


def enrich_players(ledger: WrLedger, client, cutoff: int, delay: float = 0) -> int:
    """Fill players_data for recent entries saved before avatars were recorded."""
    enriched = 0
    for entry in ledger:
        if entry.verified_epoch < cutoff or entry.players_data is not None:
            continue
        run = Run.from_json(client.run_details(entry.run_id, embed=True))
        if run is None:
            continue
        players_data = players_data_of(run.players)
        if players_data:
            entry.players_data = players_data
            enriched += 1
        if delay:
            time.sleep(delay)
    return enriched
