import json
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from wrconfig import Config

logger = logging.getLogger(__name__)

RUN_EMBEDS = "game,category,players,level"
COVER_ASSETS = ("cover-tiny", "cover-small", "cover-medium", "cover-large", "icon")


# ----------------- json helpers -----------------

def get_obj(obj, key) -> Optional[Dict[str, Any]]:
    value = obj.get(key) if isinstance(obj, dict) else None
    return value if isinstance(value, dict) else None


def get_str(obj, key) -> Optional[str]:
    value = obj.get(key) if isinstance(obj, dict) else None
    return value if isinstance(value, str) else None


def get_number(obj, key) -> Optional[float]:
    value = obj.get(key) if isinstance(obj, dict) else None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        value = float(value)
    except OverflowError:
        return None
    return value if math.isfinite(value) else None


def jsonget(response) -> Optional[Any]:
    try:
        return json.loads(response.content)
    except ValueError:
        return None


# ----------------- time helpers -----------------

def parse_verify_date(value) -> Optional[int]:
    """Parse '2024-05-01T12:00:00Z' or '2024-05-01T12:00:00.123Z' to epoch seconds.

    Fractional seconds are dropped, never rounded.
    """
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if "." in text:
        text = text.split(".", 1)[0] + "Z"
    try:
        dt = datetime.strptime(text, "%Y-%m-%dT%H:%M:%SZ")
    except ValueError:
        return None
    return int(dt.replace(tzinfo=timezone.utc).timestamp())


# ----------------- asset uri helpers -----------------

def force_https(uri: Optional[str]) -> str:
    if not uri:
        return ""
    if uri.startswith("http://"):
        return "https://" + uri[len("http://"):]
    return uri


def _png_after(uri: str, segment: str) -> str:
    idx = uri.rfind(segment)
    if idx < 0:
        return uri
    cut = idx + len(segment)
    if cut < len(uri) and uri[cut] not in "?#":
        return uri
    return uri[:cut] + ".png" + uri[cut:]


def normalize_cover_uri(uri: Optional[str]) -> str:
    # .../cover?v=1 -> .../cover.png?v=1
    return _png_after(force_https(uri), "/cover")


def normalize_user_image_uri(uri: Optional[str]) -> str:
    # .../image?v=1 -> .../image.png?v=1
    return _png_after(force_https(uri), "/image")


# ----------------- runs -----------------

def extract_id_and_name(field_value):
    """game/category/level are either an id string or an embedded {"data": {...}}."""
    if isinstance(field_value, str):
        return field_value, None
    data = get_obj(field_value, "data")
    if data is None:
        return None, None
    name = get_str(get_obj(data, "names"), "international")
    name = get_str(data, "name") or name
    return get_str(data, "id"), name


@dataclass
class Player:
    name: str
    weblink: str = ""
    image: str = ""

    @classmethod
    def from_json(cls, obj) -> "Player":
        name = get_str(obj, "name") or get_str(get_obj(obj, "names"), "international")
        name = name or get_str(obj, "id") or "unknown"
        assets = get_obj(obj, "assets")
        image = get_str(get_obj(assets, "image"), "uri")
        if not image:
            image = get_str(get_obj(assets, "icon"), "uri")
        return cls(
            name=name,
            weblink=get_str(obj, "weblink") or "",
            image=normalize_user_image_uri(image) if image else "",
        )

    def to_dict(self):
        return {"name": self.name, "weblink": self.weblink, "image": self.image}


def clean_filters(values) -> Dict[str, str]:
    if not isinstance(values, dict):
        return {}
    return {k: v for k, v in values.items() if isinstance(k, str) and isinstance(v, str) and v}


@dataclass
class Run:
    id: Optional[str]
    verify_date: Optional[str] = None
    verified_epoch: Optional[int] = None
    primary_t: Optional[float] = None
    game_id: Optional[str] = None
    game_name: Optional[str] = None
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    level_id: Optional[str] = None
    level_name: Optional[str] = None
    values: Dict[str, str] = field(default_factory=dict)
    weblink: str = ""
    players: List[Player] = field(default_factory=list)
    game_cover: str = ""

    @classmethod
    def from_json(cls, obj) -> Optional["Run"]:
        if not isinstance(obj, dict):
            return None
        verify_date = get_str(get_obj(obj, "status"), "verify-date")
        primary_t = get_number(get_obj(obj, "times"), "primary_t")
        if primary_t is not None and primary_t < 0:
            primary_t = None
        game_id, game_name = extract_id_and_name(obj.get("game"))
        category_id, category_name = extract_id_and_name(obj.get("category"))
        level_id, level_name = extract_id_and_name(obj.get("level"))

        players = obj.get("players")
        if isinstance(players, dict):
            players = players.get("data")
        if not isinstance(players, list):
            players = []

        cover = None
        assets = get_obj(get_obj(get_obj(obj, "game"), "data"), "assets")
        for key in COVER_ASSETS:
            cover = get_str(get_obj(assets, key), "uri")
            if cover:
                break

        return cls(
            id=get_str(obj, "id"),
            verify_date=verify_date,
            verified_epoch=parse_verify_date(verify_date),
            primary_t=primary_t,
            game_id=game_id,
            game_name=game_name,
            category_id=category_id,
            category_name=category_name,
            level_id=level_id,
            level_name=level_name,
            values=clean_filters(obj.get("values")),
            weblink=get_str(obj, "weblink") or "",
            players=[Player.from_json(p) for p in players if isinstance(p, dict)],
            game_cover=normalize_cover_uri(cover) if cover else "",
        )


# ----------------- http client -----------------

class SrcClient:
    """Blocking speedrun.com API client. Every failure comes back as None."""

    def __init__(self, config: Optional[Config] = None, session=None):
        self.config = config or Config()
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": self.config.user_agent,
            "Accept-Encoding": "gzip, deflate",
        })

    def httpget(self, url, params=None):
        attempts = max(1, self.config.http_attempts)
        for attempt in range(1, attempts + 1):
            started = time.monotonic()
            try:
                r = self.session.get(
                    url,
                    params=params,
                    timeout=(self.config.connect_timeout, self.config.read_timeout),
                    allow_redirects=True,
                )
            except requests.RequestException as e:
                logger.debug("HTTP FAIL attempt=%d (%s) in %.2fs: %s",
                             attempt, e, time.monotonic() - started, url)
                return None
            elapsed = time.monotonic() - started
            if 200 <= r.status_code < 300:
                logger.debug("HTTP %d in %.2fs (%d bytes): %s",
                             r.status_code, elapsed, len(r.content), r.url)
                return r
            logger.debug("HTTP FAIL attempt=%d code=%d in %.2fs: %s",
                         attempt, r.status_code, elapsed, r.url)
            if r.status_code == 429 or 500 <= r.status_code < 600:
                if attempt < attempts:
                    time.sleep(self.config.http_backoff * attempt)
                continue
            return None
        return None

    def get_json(self, path, params=None) -> Optional[Any]:
        url = f"{self.config.api_base}/{path.lstrip('/')}"
        r = self.httpget(url, params=params)
        if r is None:
            return None
        doc = jsonget(r)
        if doc is None:
            logger.debug("Unparseable JSON from %s", url)
        return doc

    def runs_page(self, offset, max_runs) -> Optional[List[Any]]:
        doc = self.get_json("runs", params={
            "status": "verified",
            "orderby": "verify-date",
            "direction": "desc",
            "embed": RUN_EMBEDS,
            "max": max_runs,
            "offset": offset,
        })
        data = doc.get("data") if isinstance(doc, dict) else None
        return data if isinstance(data, list) else None

    def leaderboard(self, game_id, category_id, level_id, filters, top) -> Optional[List[Any]]:
        if level_id:
            path = f"leaderboards/{game_id}/level/{level_id}/{category_id}"
        else:
            path = f"leaderboards/{game_id}/category/{category_id}"
        params = {"top": top}
        for var_id, value_id in filters.items():
            params[f"var-{var_id}"] = value_id
        doc = self.get_json(path, params=params)
        runs = get_obj(doc, "data")
        runs = runs.get("runs") if runs is not None else None
        return runs if isinstance(runs, list) else None

    def run_details(self, run_id, embed=False) -> Optional[Dict[str, Any]]:
        if not run_id:
            return None
        params = {"embed": RUN_EMBEDS} if embed else None
        return get_obj(self.get_json(f"runs/{run_id}", params=params), "data")

    def category_variables(self, category_id) -> Optional[List[Any]]:
        doc = self.get_json(f"categories/{category_id}/variables", params={"max": 200})
        data = doc.get("data") if isinstance(doc, dict) else None
        return data if isinstance(data, list) else None

    def close(self):
        self.session.close()
