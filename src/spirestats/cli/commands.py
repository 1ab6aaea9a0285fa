"""CLI commands for testing and manual operation."""

import argparse
import signal
import sys
import threading
import webbrowser
from pathlib import Path
from typing import Optional

from spirestats.collector.backup import BackupScheduler
from spirestats.collector.library import RunLibrary
from spirestats.collector.safe_files import PathTraversalError
from spirestats.collector.watcher import RunWatcher
from spirestats.config.logging import setup_logging
from spirestats.config.paths import get_backup_dir, get_data_dir
from spirestats.config.preferences import get_preference, load_preferences
from spirestats.config.settings import Settings, find_run_folder
from spirestats.core.models import Character, Run, normalize_character
from spirestats.core.neow_stats import ALL_KEY
from spirestats.core.stats_cache import StatsCache
from spirestats.db.connection import Database
from spirestats.db.migrations import LATEST_VERSION, MigrationError, get_current_version, rollback
from spirestats.db.repository import RUN_FOLDER_SETTING, Repository


def _open_library(settings: Settings) -> RunLibrary:
    """Open the database and build a library tuned by settings and preferences."""
    db = Database(settings.db_path)
    db.connect()
    preferences = load_preferences()
    return RunLibrary(
        db,
        stats_cache=StatsCache(
            max_size=preferences.max_cache_size,
            ttl_seconds=settings.cache_ttl_seconds,
        ),
        watcher=RunWatcher(quiescence_seconds=settings.quiescence_seconds),
        preferences=preferences,
        data_dir=get_data_dir(portable=settings.portable),
    )


def _print_run(run: Run) -> None:
    """Print one run line to console."""
    result = "WIN " if run.victory else "LOSS"
    minutes = run.playtime // 60
    seconds = run.playtime % 60
    print(f"  {run.id[:20]:<20} {run.character.value:<9} {result} "
          f"A{run.ascension_level:<2} floor {run.floor_reached:>2} "
          f"{minutes:>3}m {seconds:02d}s  score {run.score}")


def _resolve_folder(folder: Optional[str], settings: Settings, repo: Repository) -> Optional[Path]:
    """Explicit argument, then the last ingested folder, then auto-detect."""
    if folder:
        return Path(folder)
    saved = repo.get_setting(RUN_FOLDER_SETTING) or get_preference("run_folder")
    if saved and Path(saved).is_dir():
        return Path(saved)
    return settings.run_folder or find_run_folder()


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize database and apply migrations."""
    settings = Settings.from_args(db_path=args.db, portable=args.portable)

    print(f"Initializing database at: {settings.db_path}")

    db = Database(settings.db_path)
    applied = db.connect()
    if applied:
        print(f"  Applied migrations: {', '.join(str(v) for v in applied)}")
    else:
        print("  Schema up to date")
    print(f"  {Repository(db).get_run_count()} runs in database")

    db.close()
    print("Done.")
    return 0


def cmd_ingest(args: argparse.Namespace) -> int:
    """Scan a run folder and store new runs."""
    settings = Settings.from_args(run_folder=args.folder, db_path=args.db, portable=args.portable)
    library = _open_library(settings)

    try:
        folder = _resolve_folder(args.folder, settings, library.repository)
        if folder is None:
            print("Error: No run folder specified and auto-detect failed")
            return 1

        try:
            report = library.ingest(folder)
        except FileNotFoundError as e:
            print(f"Error: {e}")
            return 1

        print(f"Ingested: {folder}")
        print(f"  New:        {len(report.inserted)}")
        print(f"  Duplicates: {len(report.duplicates)}")
        print(f"  Failed:     {len(report.failed)}")
        print(f"  Rejected:   {len(report.rejected)}")
        print(f"  Stored:     {len(report.runs)}")
    finally:
        library.close()
        library.db.close()
    return 0


def cmd_show_runs(args: argparse.Namespace) -> int:
    """List recent runs."""
    settings = Settings.from_args(db_path=args.db, portable=args.portable)
    library = _open_library(settings)

    runs = library.get_all_runs()[:args.limit]
    if not runs:
        print("No runs recorded")
        library.db.close()
        return 0

    print(f"Recent Runs (last {len(runs)}):")
    print("-" * 72)
    for run in runs:
        _print_run(run)
    print("-" * 72)

    library.db.close()
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Show per-character statistics for a card or relic."""
    settings = Settings.from_args(db_path=args.db, portable=args.portable)
    library = _open_library(settings)

    if args.kind == "card":
        stats = library.stats_for_card(args.key)
    else:
        stats = library.stats_for_relic(args.key)

    characters = list(Character)
    if args.character:
        character = normalize_character(args.character)
        if character is None:
            print(f"Error: Unknown character: {args.character}")
            library.db.close()
            return 1
        characters = [character]

    print(f"{args.kind.title()} '{stats.key}':")
    print(f"  {'character':<9} {'plays':>5} {'picked':>6} {'wins':>5} "
          f"{'pick%':>6} {'win%':>6} {'r50 pick%':>9} {'r50 win%':>8}")
    for character in characters:
        s = stats[character]
        print(f"  {character.value:<9} {s.total_plays:>5} {s.obtain_count:>6} {s.victory_count:>5} "
              f"{s.obtain_rate:>6.1f} {s.win_rate:>6.1f} "
              f"{s.recent50_obtain_rate:>9.1f} {s.recent50_win_rate:>8.1f}")

    library.db.close()
    return 0


def cmd_neow(args: argparse.Namespace) -> int:
    """Show how often each Neow bonus was taken and its heart win rate."""
    settings = Settings.from_args(db_path=args.db, portable=args.portable)
    library = _open_library(settings)

    name = ALL_KEY
    if args.character and args.character.lower() != ALL_KEY:
        character = normalize_character(args.character)
        if character is None:
            print(f"Error: Unknown character: {args.character}")
            library.db.close()
            return 1
        name = character.value

    by_bonus = library.neow_stats().get(name, {})
    library.db.close()

    if not by_bonus:
        print("No Neow bonuses recorded")
        return 0

    print(f"Neow bonuses ({name}):")
    print(f"  {'bonus':<28} {'taken':>5} {'wins':>5} {'win%':>6} {'r50 taken':>9} {'r50 win%':>8}")
    ranked = sorted(by_bonus.items(), key=lambda item: (-item[1].total_selected, item[0]))
    for bonus, s in ranked:
        print(f"  {bonus:<28} {s.total_selected:>5} {s.total_wins:>5} {s.total_win_rate:>6.1f} "
              f"{s.last50_selected:>9} {s.last50_win_rate:>8.1f}")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Export every run to JSON inside the data directory."""
    settings = Settings.from_args(db_path=args.db, portable=args.portable)
    library = _open_library(settings)

    try:
        path = library.export_all(Path(args.output) if args.output else None)
    except PathTraversalError as e:
        print(f"Error: {e}")
        return 1
    finally:
        library.db.close()

    print(f"Exported to: {path}")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    """Import runs from an export file."""
    settings = Settings.from_args(db_path=args.db, portable=args.portable)
    library = _open_library(settings)

    try:
        count = library.import_all(Path(args.file))
    except FileNotFoundError as e:
        print(f"Error: {e}")
        return 1
    except ValueError as e:
        print(f"Error: Invalid import file: {e}")
        return 1
    finally:
        library.db.close()

    print(f"Imported {count} runs")
    return 0


def cmd_watch(args: argparse.Namespace) -> int:
    """Print runs as the game writes them (not stored until the next ingest)."""
    settings = Settings.from_args(run_folder=args.folder, db_path=args.db, portable=args.portable)
    setup_logging(portable=settings.portable, console=False)

    errors = settings.validate()
    if errors:
        for error in errors:
            print(f"Error: {error}")
        return 1

    library = _open_library(settings)

    folder = _resolve_folder(args.folder, settings, library.repository)
    if folder is None:
        print("Error: No run folder specified and auto-detect failed")
        library.db.close()
        return 1

    stop = threading.Event()

    def on_run(run: Run) -> None:
        print("New run:")
        _print_run(run)

    def signal_handler(sig, frame):
        print("\nStopping...")
        stop.set()

    library.on_new_run_detected(on_run)
    try:
        try:
            started = library.start_watching(folder)
        except FileNotFoundError as e:
            print(f"Error: {e}")
            return 1
        if not started:
            print(f"Error: Could not watch {folder}")
            return 1

        print(f"Watching: {folder}")
        print("Press Ctrl+C to stop\n")
        signal.signal(signal.SIGINT, signal_handler)

        while not stop.wait(0.5):
            pass
    finally:
        library.close()
        library.db.close()
    return 0


def cmd_migrate(args: argparse.Namespace) -> int:
    """Apply pending migrations or roll back to a version."""
    settings = Settings.from_args(db_path=args.db, portable=args.portable)
    db = Database(settings.db_path)

    try:
        applied = db.connect()
        if args.rollback_to is not None:
            reverted = rollback(db, args.rollback_to)
            print(f"Rolled back: {', '.join(str(v) for v in reverted) or 'nothing'}")
        elif applied:
            print(f"Applied: {', '.join(str(v) for v in applied)}")
        print(f"Schema version: {get_current_version(db.connection)} (latest {LATEST_VERSION})")
    except MigrationError as e:
        print(f"Error: {e}")
        return 1
    finally:
        db.close()
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the web server with optional watcher and backups."""
    from spirestats.version import __version__

    logger = setup_logging(portable=args.portable)
    logger.info(f"SpireStats v{__version__} starting...")

    # Import here to avoid loading FastAPI when not needed
    try:
        import uvicorn
        from spirestats.api.app import create_app
    except ImportError:
        logger.error("FastAPI and Uvicorn are required for the serve command.")
        logger.error("Install with: pip install fastapi uvicorn[standard]")
        return 1

    settings = Settings.from_args(run_folder=args.folder, db_path=args.db, portable=args.portable)
    logger.info(f"Database: {settings.db_path}")

    errors = settings.validate()
    if errors:
        for error in errors:
            logger.error(f"Invalid settings: {error}")
        return 1

    library = _open_library(settings)
    backups: Optional[BackupScheduler] = None

    try:
        folder = _resolve_folder(args.folder, settings, library.repository)
        if folder and folder.is_dir():
            logger.info(f"Run folder: {folder}")
            library.ingest(folder)
            library.start_watching(folder)
        else:
            logger.warning("No run folder found - load one from the API")

        library.start_prewarm()

        if not args.no_backup:
            backups = BackupScheduler(
                library.repository,
                get_backup_dir(portable=settings.portable),
                interval_seconds=settings.backup_interval_seconds,
                max_backups=settings.max_backups,
            )
            backups.start()

        app = create_app(library)

        url = f"http://{args.host}:{args.port}/docs"
        if args.open_browser:
            logger.info(f"Opening browser at {url}")
            webbrowser.open(url)

        logger.info(f"Starting server on port {args.port}")

        # log_config=None keeps uvicorn on our handlers
        uvicorn.run(
            app,
            host=args.host,
            port=args.port,
            log_level="warning",
            log_config=None,
        )
    finally:
        if backups:
            backups.stop()
        try:
            library.close()
        except RuntimeError as e:
            logger.error(f"Error stopping watcher: {e}")
        library.db.close()
        logger.info("Shutting down...")

    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="spirestats",
        description="Slay the Spire run history and card/relic statistics",
    )
    parser.add_argument(
        "--db",
        type=str,
        help="Database file path",
    )
    parser.add_argument(
        "--portable",
        action="store_true",
        help="Use portable mode (./data under the working directory)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # init command
    subparsers.add_parser("init", help="Initialize database")

    # ingest command
    ingest_parser = subparsers.add_parser("ingest", help="Load .run files from a run folder")
    ingest_parser.add_argument(
        "folder",
        type=str,
        nargs="?",
        help="Run folder (last used or auto-detected if not specified)",
    )

    # show-runs command
    runs_parser = subparsers.add_parser("show-runs", help="List recent runs")
    runs_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Number of runs to show (default: 20)",
    )

    # stats command
    stats_parser = subparsers.add_parser("stats", help="Card or relic statistics")
    stats_parser.add_argument("kind", choices=["card", "relic"])
    stats_parser.add_argument("key", type=str, help="Card or relic name, any spelling")
    stats_parser.add_argument(
        "--character",
        type=str,
        help="Only show one character",
    )

    # neow command
    neow_parser = subparsers.add_parser("neow", help="Neow bonus statistics")
    neow_parser.add_argument(
        "--character",
        type=str,
        help="One character instead of all characters combined",
    )

    # export command
    export_parser = subparsers.add_parser("export", help="Export runs to JSON")
    export_parser.add_argument(
        "--output",
        type=str,
        help="Output file inside the data directory",
    )

    # import command
    import_parser = subparsers.add_parser("import", help="Import runs from JSON")
    import_parser.add_argument("file", type=str, help="Export or backup file")

    # watch command
    watch_parser = subparsers.add_parser("watch", help="Print new runs as they are written")
    watch_parser.add_argument(
        "folder",
        type=str,
        nargs="?",
        help="Run folder (last used or auto-detected if not specified)",
    )

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start web server")
    serve_parser.add_argument(
        "folder",
        type=str,
        nargs="?",
        help="Run folder to load and watch (auto-detects if not specified)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to run server on (default: 8000)",
    )
    serve_parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    serve_parser.add_argument(
        "--no-backup",
        action="store_true",
        help="Disable periodic backups",
    )
    serve_parser.add_argument(
        "--open-browser",
        action="store_true",
        help="Open the API docs in a browser",
    )

    # migrate command
    migrate_parser = subparsers.add_parser("migrate", help="Apply or roll back schema migrations")
    migrate_parser.add_argument(
        "--rollback-to",
        type=int,
        help="Revert migrations above this version (manual recovery)",
    )

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "init": cmd_init,
        "ingest": cmd_ingest,
        "show-runs": cmd_show_runs,
        "stats": cmd_stats,
        "neow": cmd_neow,
        "export": cmd_export,
        "import": cmd_import,
        "watch": cmd_watch,
        "serve": cmd_serve,
        "migrate": cmd_migrate,
    }

    cmd_func = commands.get(args.command)
    if cmd_func is None:
        print(f"Unknown command: {args.command}")
        return 1

    return cmd_func(args)


if __name__ == "__main__":
    sys.exit(main())
