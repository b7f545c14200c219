from datetime import datetime, timezone
from zoneinfo import ZoneInfo

ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#39;",
    "|": "&#124;",
    "\n": " ",
    "\r": " ",
    "\t": " ",
}


def escape(text) -> str:
    return "".join(ESCAPES.get(ch, ch) for ch in (text or ""))


def sec2time(sec):
    ''' Convert seconds to 'H:MM:SS.FFF' or 'M:SS.FFF', dropping .FFF for whole seconds '''
    if sec is None or sec < 0:
        return "?"
    n_msec = 3 if not float(sec).is_integer() else 0
    sec = round(sec, n_msec) if n_msec else int(sec)
    m, s = divmod(sec, 60)
    h, m = divmod(m, 60)
    if n_msec > 0:
        sec_pattern = '%%0%d.%df' % (n_msec + 3, n_msec)
    else:
        sec_pattern = '%02d'
    if h == 0:
        return ('%d:' + sec_pattern) % (m, s)
    return ('%d:%02d:' + sec_pattern) % (h, m, s)


def format_when(epoch, tz_name="UTC") -> str:
    tz = timezone.utc if tz_name == "UTC" else ZoneInfo(tz_name)
    return datetime.fromtimestamp(epoch, tz).strftime("%b %d, %Y %I:%M %p %Z")


TZ_LABELS = {"America/New_York": "ET"}


def sub(text) -> str:
    return f"<sub>{escape(text)}</sub>"


def subcat_cell(text, width) -> str:
    text = text or ""
    shown = text
    if width > 0 and len(text) > width:
        shown = text[:width - 1] + "…"
    return f'<sub><span title="{escape(text)}">{escape(shown)}</span></sub>'


def game_cell(name, cover) -> str:
    cell = '<div style="text-align:center;">'
    if cover:
        cell += (f'<img src="{escape(cover)}" alt="" width="60" '
                 'style="display:block; margin:0 auto 4px auto;"/>')
    cell += "<br/>" + sub(name) + "</div>"
    return cell


def runners_cell(players_data, fallback) -> str:
    if not players_data:
        return sub(fallback)
    cell = '<div style="display:flex; gap:6px; justify-content:center; align-items:flex-start;">'
    for p in players_data:
        name = p.get("name") or "unknown"
        image = p.get("image") or ""
        link = p.get("weblink") or ""
        cell += '<div style="text-align:center;">'
        if image:
            avatar = (f'<img src="{escape(image)}" alt="" width="40" '
                      'style="display:block; margin:0 auto 4px auto; border-radius:50%;"/>')
            if link:
                avatar = f'<a href="{escape(link)}">{avatar}</a>'
            cell += avatar
        cell += "<br/>" + sub(name) + "</div>"
    return cell + "</div>"


def link_cell(link) -> str:
    if link:
        return f'<sub><a href="{escape(link)}">link</a></sub>'
    return "<sub>&nbsp;</sub>"


def write_section(out, title, entries, cutoff, tz_name="UTC", subcat_width=20):
    out.write(f"### {title}\n\n")
    when = TZ_LABELS.get(tz_name, tz_name)
    out.write(f"| <sub>When ({when})</sub> | <sub>Game</sub> | <sub>Category</sub> | <sub>Subcategory</sub> "
              "| <sub>Level</sub> | <sub>Time</sub> | <sub>Runner(s)</sub> | <sub>Link</sub> |\n")
    out.write("|---|---|---|---|---|---:|---|---|\n")

    printed = 0
    for e in entries:
        if e.verified_epoch < cutoff:
            continue
        cells = [
            sub(format_when(e.verified_epoch, tz_name)),
            game_cell(e.game, e.game_cover),
            sub(e.category),
            subcat_cell(e.subcats, subcat_width),
            sub(e.level),
            sub(sec2time(e.primary_t)),
            runners_cell(e.players_data, e.players),
            link_cell(e.weblink),
        ]
        out.write("| " + " | ".join(cells) + " |\n")
        printed += 1

    if printed == 0:
        out.write("| <sub>—</sub> | <em>None</em> |  |  |  |  |  |  |\n")
    out.write("\n")


def write_report(out, entries, sections, tz_name="UTC", subcat_width=20):
    """sections: (title, cutoff_epoch) pairs, rendered in order."""
    entries = list(entries)
    out.write("## 🏁 Live #1 Records\n\n")
    out.write("_Updated hourly via GitHub Actions._\n\n")
    for title, cutoff in sections:
        write_section(out, title, entries, cutoff, tz_name, subcat_width)


def write_weekly(out, runs, days):
    out.write(f"### Current #1 records verified in the last {days} days\n\n")
    if not runs:
        out.write(f"_No current #1 records found in the last {days} days (or API throttled)._ \n")
        return

    out.write("| Verified (UTC) | Game | Category | Level | Time | Runner(s) | Link |\n")
    out.write("|---|---|---|---|---:|---|---|\n")
    for run in runs:
        level = (run.level_name or run.level_id) if run.level_id else ""
        cells = [
            run.verify_date or "",
            run.game_name or run.game_id or "",
            run.category_name or run.category_id or "",
            level,
            sec2time(run.primary_t),
            ", ".join(p.name for p in run.players),
            run.weblink,
        ]
        out.write("| " + " | ".join(escape(c) for c in cells) + " |\n")
    out.write("\n_Last updated via GitHub Actions._\n")
