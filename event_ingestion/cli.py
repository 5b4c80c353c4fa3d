from __future__ import annotations

import argparse
import logging
import signal

from dotenv import load_dotenv

from .config import load_settings
from .consumer import EventConsumer
from .logging_utils import configure_logging, get_logger, log_json
from .registry import build_consumer, build_storage
from .storage import PostgresEventStorage


def cmd_run(consumer: EventConsumer) -> int:
    def _request_stop(signum, _frame):
        log_json(get_logger(), logging.INFO, "stop_requested", signal=signal.Signals(signum).name)
        consumer.stop()

    previous = {sig: signal.signal(sig, _request_stop) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        consumer.run()
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
    return 0


def cmd_once(consumer: EventConsumer) -> int:
    stats = consumer.run_one_round()
    for o in stats.outcomes:
        line = f"{o.source_name}  {o.state.value}  fetched={o.fetched} stored={o.stored} replayed={o.replayed} skipped={o.skipped}"
        if o.cursor_before is not None:
            line += f"  cursor={o.cursor_before}->{o.cursor_after}"
        if o.error:
            line += f"  error={o.error}"
        print(line)
    return 1 if stats.errors else 0


def cmd_status(consumer: EventConsumer) -> int:
    for source in consumer.sources:
        print(f"{source.name}  cursor={consumer.storage.get_cursor(source.name)}")
    return 0


def main(argv=None) -> int:
    load_dotenv(override=False)

    parser = argparse.ArgumentParser(prog="event_ingestion")
    sub = parser.add_subparsers(dest="cmd", required=True)

    consume = sub.add_parser("consume", help="Event consumer commands")
    consume_sub = consume.add_subparsers(dest="consume_cmd", required=True)

    consume_sub.add_parser("run", help="Poll all sources until stopped")
    consume_sub.add_parser("once", help="Run a single polling round")
    consume_sub.add_parser("status", help="Show stored cursors")
    consume_sub.add_parser("init-db", help="Create the Postgres tables")

    args = parser.parse_args(argv)

    settings = load_settings()
    configure_logging(settings.log_level)
    logger = get_logger()

    try:
        if args.consume_cmd == "init-db":
            storage = build_storage(settings)
            if isinstance(storage, PostgresEventStorage):
                storage.ensure_schema()
            log_json(logger, logging.INFO, "schema_ready", backend=settings.storage_backend)
            return 0

        consumer = build_consumer(settings)
        if args.consume_cmd == "run":
            return cmd_run(consumer)
        if args.consume_cmd == "once":
            return cmd_once(consumer)
        if args.consume_cmd == "status":
            return cmd_status(consumer)
    except Exception as e:
        log_json(logger, logging.ERROR, "consumer_failed", command=args.consume_cmd, error=str(e))
        return 1

    return 0
