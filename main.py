import argparse
import io
import logging
import sys
import time
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from feedscan import FeedScanner
from lbcheck import CategoryVariables, LeaderboardVerifier
from readme_splice import update_readme
from srcapi import SrcClient
from wrconfig import Config, setup_logging
from wrhistory import HistoryReconstructor
from wrledger import WrLedger, enrich_players, load_last_seen, save_last_seen
from wrreport import write_report, write_weekly
from wrweekly import collect_current_records

logger = logging.getLogger("main")


def run_once(config, client=None, now=None, out=None):
    """One engine pass: load, prune, scan, persist, render. Returns an exit code."""
    now = int(time.time()) if now is None else now
    cutoff_recent = now - config.recent_window
    cutoff = now - config.retention
    logger.debug("Start. now=%d cutoff_recent=%d cutoff=%d", now, cutoff_recent, cutoff)

    try:
        Path(config.data_dir).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Failed to ensure %s directory: %s", config.data_dir, e)
        return 1

    own_client = client is None
    if own_client:
        client = SrcClient(config)

    try:
        last_seen = load_last_seen(config.state_path)
        ledger = WrLedger.load(config.wrs_path)
        ledger.prune(cutoff)

        # avatars for entries saved before players_data existed
        enrich_players(ledger, client, cutoff, config.detail_delay)

        logger.debug("Loaded state: last_seen_epoch=%d", last_seen)
        logger.debug("Loaded wrs.json (post-prune): %d entries", len(ledger))

        variables = CategoryVariables(client)
        reconstructor = HistoryReconstructor(
            client, ledger, variables,
            depth=config.history_depth,
            detail_delay=config.detail_delay,
            candidate_delay=config.candidate_delay,
        )
        scanner = FeedScanner(
            client, LeaderboardVerifier(client), reconstructor, ledger, variables,
            page_size=config.page_size,
            overlap=config.overlap,
            polite_every=config.polite_every,
            polite_delay=config.polite_delay,
        )
        new_last_seen = scanner.scan(last_seen, cutoff)
    finally:
        if own_client:
            client.close()

    ledger.sort_newest_first()
    ledger.save(config.wrs_path)
    save_last_seen(config.state_path, new_last_seen)
    logger.debug("After scan: wrs.json entries=%d new_last_seen=%d", len(ledger), new_last_seen)

    if out is not None:
        write_report(
            out,
            ledger,
            [("Past hour", cutoff_recent), ("Past 24 hours", cutoff)],
            tz_name=config.display_tz,
            subcat_width=config.subcat_width,
        )
    return 0


def emit(text, output=None, readme=None):
    if output:
        Path(output).write_text(text, encoding="utf-8")
    else:
        sys.stdout.write(text)
        sys.stdout.flush()
    if readme:
        update_readme(readme, text)


def cmd_daily(config, args):
    while True:
        buf = io.StringIO()
        try:
            status = run_once(config, out=buf)
        except Exception:
            if not args.watch:
                raise
            logger.exception("Run failed; retrying after %ss", args.watch)
        else:
            if status != 0:
                return status
            emit(buf.getvalue(), args.output, args.readme)

        if not args.watch:
            return 0
        time.sleep(args.watch)


def cmd_weekly(config, args):
    client = SrcClient(config)
    try:
        runs = collect_current_records(
            client, LeaderboardVerifier(client),
            days=args.days, limit=args.limit, page_size=config.page_size,
        )
    finally:
        client.close()
    buf = io.StringIO()
    write_weekly(buf, runs, args.days)
    emit(buf.getvalue(), args.output, args.readme)
    return 0


def cmd_readme(config, args):
    content = Path(args.content)
    if not content.is_file():
        print("Usage: main.py readme <generated_markdown_file>", file=sys.stderr)
        return 2
    update_readme(args.readme, content.read_text(encoding="utf-8"))
    return 0


def bounded_int(text):
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}")
    if not 1 <= value <= 3650:
        raise argparse.ArgumentTypeError(f"must be between 1 and 3650: {value}")
    return value


def timezone_name(text):
    if text == "UTC":
        return text
    try:
        ZoneInfo(text)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise argparse.ArgumentTypeError(f"unknown timezone: {text!r}")
    return text


def build_parser():
    parser = argparse.ArgumentParser(description="Track speedrun.com world records into a README table.")
    parser.add_argument("--data-dir", help="directory holding state.json and wrs.json")
    parser.add_argument("--tz", type=timezone_name, help="display timezone for report timestamps")
    parser.add_argument("--quiet", action="store_true", help="only log warnings and errors")
    parser.set_defaults(command="daily", output=None, readme=None, watch=0)
    sub = parser.add_subparsers(dest="command")

    daily = sub.add_parser("daily", help="scan new runs and render the live WR tables (default)")
    daily.add_argument("--output", help="write the report here instead of stdout")
    daily.add_argument("--readme", help="also splice the report into this README")
    daily.add_argument("--watch", type=int, default=0, metavar="SECONDS",
                       help="keep polling with this pause between runs")

    weekly = sub.add_parser("weekly", help="list current #1 runs verified in the last N days")
    weekly.add_argument("--days", type=bounded_int, default=7)
    weekly.add_argument("--limit", type=bounded_int, default=50)
    weekly.add_argument("--output")
    weekly.add_argument("--readme")

    readme = sub.add_parser("readme", help="splice a generated markdown file into the README")
    readme.add_argument("content")
    readme.add_argument("--readme", default="README.md")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    config = Config.from_env()
    if args.data_dir:
        config.data_dir = Path(args.data_dir)
    if args.tz:
        config.display_tz = args.tz
    if args.quiet:
        config.debug = False
    setup_logging(config)

    commands = {"daily": cmd_daily, "weekly": cmd_weekly, "readme": cmd_readme}
    return commands[args.command or "daily"](config, args)


if __name__ == "__main__":
    sys.exit(main())
