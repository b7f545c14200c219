import logging
from typing import Dict, Optional

from srcapi import clean_filters, get_obj, get_str

logger = logging.getLogger(__name__)


def build_key(game_id, category_id, level_id, filters) -> str:
    """Canonical leaderboard id: game|category|level|var1=val1&var2=val2.

    Filter pairs are sorted by variable id so map order never matters, and a
    missing level stays as an empty field.
    """
    pairs = sorted(clean_filters(filters).items())
    joined = "&".join(f"{var_id}={value_id}" for var_id, value_id in pairs)
    return f"{game_id or ''}|{category_id or ''}|{level_id or ''}|{joined}"


class LeaderboardVerifier:
    def __init__(self, client):
        self.client = client
        self.top_cache: Dict[str, str] = {}

    def top_run_id(self, game_id, category_id, level_id, filters) -> Optional[str]:
        filters = clean_filters(filters)
        key = build_key(game_id, category_id, level_id, filters)
        if key in self.top_cache:
            return self.top_cache[key]

        runs = self.client.leaderboard(game_id, category_id, level_id, filters, 1)
        if not runs:
            return None
        top_id = get_str(get_obj(runs[0], "run"), "id")
        if top_id:
            self.top_cache[key] = top_id
        return top_id

    def is_current_wr(self, run_id, game_id, category_id, level_id, filters) -> bool:
        # an unanswerable lookup counts as "not WR"
        if not run_id:
            return False
        return self.top_run_id(game_id, category_id, level_id, filters) == run_id


class CategoryVariables:
    """Subcategory labels such as "Platform: PC, Glitches: No Major Glitches"."""

    def __init__(self, client):
        self.client = client
        self.cache: Dict[str, dict] = {}

    def _load(self, category_id):
        logger.debug("Fetch category variables: cat_id=%s", category_id)
        variables = {}
        for var in self.client.category_variables(category_id) or []:
            var_id = get_str(var, "id")
            if not var_id:
                continue
            labels = {}
            values = get_obj(get_obj(var, "values"), "values") or {}
            for value_id, entry in values.items():
                labels[value_id] = get_str(entry, "label") or value_id
            variables[var_id] = (get_str(var, "name") or var_id, labels)
        return variables

    def variables(self, category_id):
        if category_id not in self.cache:
            self.cache[category_id] = self._load(category_id)
        return self.cache[category_id]

    def label(self, category_id, filters) -> str:
        filters = clean_filters(filters)
        if not category_id or not filters:
            return ""
        variables = self.variables(category_id)
        if not variables:
            return ""
        parts = []
        for var_id, value_id in filters.items():
            name, labels = variables.get(var_id, (var_id, {}))
            parts.append(f"{name}: {labels.get(value_id, value_id)}")
        return ", ".join(parts)
