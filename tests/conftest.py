from datetime import datetime, timezone

import pytest

from lbcheck import build_key


def iso(epoch):
    return datetime.fromtimestamp(epoch, timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def make_run(run_id, verified=None, t=60.0, game="g1", category="c1", level=None,
             values=None, players=None, embed=True):
    run = {
        "id": run_id,
        "weblink": f"https://www.speedrun.com/run/{run_id}",
        "times": {"primary_t": t},
        "values": dict(values or {}),
        "status": {"status": "verified", "verify-date": iso(verified) if verified is not None else None},
    }
    if embed:
        run["game"] = {"data": {"id": game, "names": {"international": f"Game {game}"},
                                "assets": {"cover-tiny": {"uri": f"http://www.speedrun.com/static/game/{game}/cover?v=1"}}}}
        run["category"] = {"data": {"id": category, "name": f"Category {category}"}}
        run["level"] = {"data": {"id": level, "name": f"Level {level}"}} if level else {"data": []}
        run["players"] = {"data": players if players is not None else [
            {"id": "u1", "names": {"international": "Runner"}, "weblink": "https://www.speedrun.com/user/Runner",
             "assets": {"image": {"uri": "http://www.speedrun.com/static/user/u1/image?v=2"}}},
        ]}
    else:
        run["game"] = game
        run["category"] = category
        run["level"] = level
        run["players"] = [{"rel": "user", "id": "u1"}]
    return run


class FakeClient:
    """In-memory stand-in for SrcClient keyed the same way the engine asks."""

    def __init__(self, feed=None, leaderboards=None, details=None, variables=None):
        self.feed = list(feed or [])
        self.leaderboards = dict(leaderboards or {})
        self.details = dict(details or {})
        self.variables = dict(variables or {})
        self.fail_offsets = set()
        self.calls = []

    def runs_page(self, offset, max_runs):
        self.calls.append(("runs", offset, max_runs))
        if offset in self.fail_offsets:
            return None
        return self.feed[offset:offset + max_runs]

    def leaderboard(self, game_id, category_id, level_id, filters, top):
        key = build_key(game_id, category_id, level_id, filters)
        self.calls.append(("leaderboard", key, top))
        runs = self.leaderboards.get(key)
        if runs is None:
            return None
        return [{"place": i + 1, "run": r} for i, r in enumerate(runs[:top])]

    def run_details(self, run_id, embed=False):
        self.calls.append(("run", run_id, embed))
        return self.details.get(run_id)

    def category_variables(self, category_id):
        self.calls.append(("variables", category_id))
        return self.variables.get(category_id)

    def count(self, kind, *args):
        return sum(1 for c in self.calls if c[0] == kind and c[1:1 + len(args)] == args)


@pytest.fixture
def fake_client():
    return FakeClient()
