"""Main application - schedules queue processing, cleanup, and auto-archive."""
import argparse
import json
import signal
import sys
import time

from mail_archiver.logging_conf import logger
from mail_archiver import settings
from mail_archiver.db import Database
from mail_archiver.archiver import archive_thread, auto_archive_due_threads
from mail_archiver.credentials import TokenManager
from mail_archiver.errors import NotFoundOrUnauthorized
from mail_archiver.gmail_client import GmailClient
from mail_archiver.queue.archive_queue import ArchiveQueue
from mail_archiver.worker import QueueProcessor


class Application:
    """Runs each job on its own interval until stopped."""

    def __init__(self, db=None, processor=None):
        self.db = db or Database()
        self.queue = ArchiveQueue(self.db)
        self.processor = processor or QueueProcessor(self.queue, GmailClient(), TokenManager(self.db))
        self.running = False
        self.jobs = [
            ("process", settings.PROCESS_INTERVAL, self.process),
            ("cleanup", settings.CLEANUP_INTERVAL, self.cleanup),
        ]
        if settings.AUTO_ARCHIVE_INTERVAL > 0:
            self.jobs.append(("auto-archive", settings.AUTO_ARCHIVE_INTERVAL, self.auto_archive))
        self._next_run = {}

    def start(self):
        """Start the application."""
        logger.info("=" * 50)
        logger.info("Gmail Archive Queue")
        logger.info("=" * 50)
        for name, interval, _ in self.jobs:
            logger.info(f"{name}: every {interval}s")
        logger.info("=" * 50)

        settings.validate_config()
        self.running = True
        now = time.monotonic()
        self._next_run = {name: now for name, _, _ in self.jobs}

    def stop(self):
        """Stop the application."""
        if not self.running:
            return
        self.running = False
        self.db.close()
        logger.info("Stopped")

    def run(self):
        """Main loop."""
        self.start()

        # Claims left behind by a crashed run
        self.queue.reset_stuck_items()

        while self.running:
            try:
                self.tick()
            except KeyboardInterrupt:
                break
            time.sleep(1)

        self.stop()

    def tick(self):
        """Run every job whose interval has elapsed."""
        now = time.monotonic()
        for name, interval, job in self.jobs:
            if not self.running:
                break
            if now < self._next_run.get(name, now):
                continue
            try:
                job()
            except Exception as e:
                logger.error(f"Job {name} failed: {e}", exc_info=True)
            self._next_run[name] = now + interval

    def process(self, limit=None):
        return self.processor.process_queue(limit)

    def cleanup(self):
        self.queue.reset_stuck_items()
        return self.queue.cleanup()

    def auto_archive(self):
        return auto_archive_due_threads(self.db, queue=self.queue)


def build_parser():
    parser = argparse.ArgumentParser(prog="mail-archiver", description="Gmail archive queue worker")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Run the scheduler loop (default)")

    process = sub.add_parser("process", help="Process one batch now")
    process.add_argument("--limit", type=int, default=None)

    sub.add_parser("cleanup", help="Delete old completed and exhausted items")
    sub.add_parser("stats", help="Print queue statistics as JSON")
    sub.add_parser("auto-archive", help="Archive newsletters that are due")
    sub.add_parser("init-db", help="Create tables if missing")

    archive = sub.add_parser("archive", help="Archive a thread on behalf of a user")
    archive.add_argument("--user", required=True)
    archive.add_argument("--thread", required=True)
    archive.add_argument("--no-sync", action="store_true", help="Do not archive in Gmail")
    return parser


def main(argv=None):
    """Entry point."""
    args = build_parser().parse_args(argv)
    command = args.command or "run"

    if command == "run":
        app = Application()

        def signal_handler(sig, frame):
            logger.info(f"Received signal {sig}")
            app.stop()
            sys.exit(0)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        try:
            app.run()
        except ValueError as e:
            logger.error(f"Configuration error: {e}")
            sys.exit(1)
        return

    try:
        settings.validate_config(require_credentials=command == "process")
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    db = Database()
    try:
        if command == "init-db":
            db.apply_schema()
        elif command == "archive":
            try:
                result = archive_thread(db, args.user, args.thread, should_sync_remote=not args.no_sync)
            except NotFoundOrUnauthorized as e:
                logger.error(str(e))
                sys.exit(2)
            print(json.dumps(result.to_dict()))
        else:
            app = Application(db=db)
            app.running = True
            if command == "process":
                print(json.dumps(app.process(args.limit).to_dict()))
            elif command == "cleanup":
                print(json.dumps({"deleted": app.cleanup()}))
            elif command == "auto-archive":
                print(json.dumps({"archived": app.auto_archive()}))
            elif command == "stats":
                print(json.dumps(app.queue.get_stats().to_dict(), default=str))
    finally:
        db.close()


if __name__ == "__main__":
    main()
