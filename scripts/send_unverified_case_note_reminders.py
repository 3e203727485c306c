"""Daily job: remind requesters about approved case notes they never confirmed receiving."""
from __future__ import annotations

import argparse
import logging
import sys

from casenotes.application.services.reminder_service import ReminderService
from casenotes.bootstrap.startup import initialize_database, setup_logging
from casenotes.config import DB_FILE, LOG_DIR, settings


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--after-hours",
        type=int,
        default=settings.reminder_after_hours,
        help="minimum age of the approval before a reminder is sent",
    )
    args = parser.parse_args(argv)

    setup_logging(LOG_DIR, settings.log_level)
    if not initialize_database(db_file=DB_FILE, database_url=settings.database_url, log_dir=LOG_DIR):
        return 1
    sent = ReminderService(after_hours=args.after_hours).send_reminders()
    logging.getLogger(__name__).info("Reminder run finished, %s requesters notified", sent)
    return 0


if __name__ == "__main__":
    sys.exit(main())
