import argparse
import time
from pathlib import Path

from . import __version__
from .client import AnalysisClient
from .database import init_database
from .env import Settings, load_env
from .languages import language_key
from .logger import configure_logger, get_logger
from .registry import ConflictError, FillJobRegistry
from .storage import DatastoreError, WordStore


def _open_store(settings: Settings) -> WordStore:
    return WordStore(init_database(settings.database_url))


def cmd_init_db(args: argparse.Namespace, settings: Settings) -> None:
    init_database(settings.database_url)
    print(f"Database ready: {settings.database_url}")


def cmd_seed(args: argparse.Namespace, settings: Settings) -> None:
    input_path = Path(args.input)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")

    words = []
    with input_path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#"):
                words.append(line)

    key = language_key(args.language or settings.default_language)
    store = _open_store(settings)
    try:
        added = store.add_words(key, words)
    except DatastoreError as e:
        raise SystemExit(str(e))
    print(f"Done. read={len(words)} added={added} language={key}")


def cmd_unfilled(args: argparse.Namespace, settings: Settings) -> None:
    key = language_key(args.language or settings.default_language)
    store = _open_store(settings)
    try:
        count = store.count_unfilled(key)
    except DatastoreError as e:
        raise SystemExit(str(e))
    print(f"Unfilled words ({key}): {count}")


def cmd_fill(args: argparse.Namespace, settings: Settings) -> None:
    store = _open_store(settings)
    client = AnalysisClient(settings.llm_proxy_url, timeout=settings.llm_timeout)
    registry = FillJobRegistry(store, client, settings)

    job_id = None
    started = time.monotonic()
    try:
        try:
            job_id = registry.start(args.language, workers=args.workers, delay_ms=args.delay_ms)
        except (ConflictError, DatastoreError) as e:
            raise SystemExit(str(e))

        if job_id is None:
            print("No unfilled words found for this language")
            return

        snapshot = registry.status(job_id)
        print(f"Job {job_id} started: total={snapshot.total} workers={snapshot.workers} delay={snapshot.delay_ms}ms")
        while not snapshot.status.is_terminal:
            snapshot = registry.wait(job_id, timeout=args.poll)
            print(
                f"[{snapshot.status.value}] completed={snapshot.completed} "
                f"failed={snapshot.failed} remaining={snapshot.remaining}"
            )
    except KeyboardInterrupt:
        print("Stopping... (waiting for in-flight requests)")
        registry.shutdown()
        if job_id is None:
            return
        snapshot = registry.status(job_id)
    finally:
        client.close()

    if snapshot.errors:
        print(f"Recent errors ({len(snapshot.errors)}):")
        for error in snapshot.errors[:10]:
            print(f" - {error.word}: {error.error}")
    if snapshot.producer_error:
        print(f"Producer stopped early: {snapshot.producer_error}")
    print(f"Done. status={snapshot.status.value} completed={snapshot.completed} failed={snapshot.failed} "
          f"elapsed={time.monotonic() - started:.1f}s")
    get_logger().log_metrics_summary()


def main(argv=None):
    # Load .env if present (DATABASE_URL, LLM_PROXY_URL, etc.)
    load_env()
    parser = argparse.ArgumentParser(prog="etymofill", description="Backfill missing etymologies via the LLM proxy")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    ini = subparsers.add_parser("init-db", help="Create the words table if missing")
    ini.set_defaults(func=cmd_init_db)

    sed = subparsers.add_parser("seed", help="Add words (one per line) without etymology")
    sed.add_argument("--input", required=True, help="Text file with one word per line")
    sed.add_argument("--language", help="Language name (default: FILL_DEFAULT_LANGUAGE)")
    sed.set_defaults(func=cmd_seed)

    unf = subparsers.add_parser("unfilled", help="Count words still missing an etymology")
    unf.add_argument("--language", help="Language name (default: FILL_DEFAULT_LANGUAGE)")
    unf.set_defaults(func=cmd_unfilled)

    fil = subparsers.add_parser("fill", help="Run a fill job and report progress until it ends")
    fil.add_argument("--language", help="Language name, e.g. Korean, Japanese, Chinese")
    fil.add_argument("--workers", type=int, help="Parallel workers (default 5, max FILL_MAX_WORKERS)")
    fil.add_argument("--delay-ms", type=int, help="Pause per worker between requests (default 3000)")
    fil.add_argument("--poll", type=float, default=5.0, help="Seconds between progress lines (default 5)")
    fil.set_defaults(func=cmd_fill)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    try:
        settings = Settings.from_env()
    except ValueError as e:
        raise SystemExit(str(e))
    configure_logger(level=settings.log_level, log_dir=Path(settings.log_dir))

    if hasattr(args, "func"):
        args.func(args, settings)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
