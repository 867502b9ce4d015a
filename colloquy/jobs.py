"""
colloquy/jobs.py
Periodic meeting status sweep.

The sweep is not scheduled from inside the application.  Whatever runs it
(cron, a platform scheduler, a test) calls run_status_sweep() and may pass
its own clock.  Run by hand with:

    python -m colloquy.jobs
"""

import logging

from colloquy import store
from colloquy.models import OPEN_STATUSES
from colloquy.scheduler import advance_all, system_clock

logger = logging.getLogger(__name__)


def run_status_sweep(clock=system_clock) -> dict:
    """
    Advance every non-terminal meeting and persist the ones that changed.

    Uses the same advance_all() as the lazy check on listings.  A failure to
    write one meeting is logged and does not stop the others; it will be
    picked up again on the next run.  A failure to list meetings is logged
    the same way and reported as list_failed.

    Returns:
        {"checked": int, "completed": int, "failed": int, "list_failed": bool}
    """
    now = clock()
    try:
        meetings = store.list_meetings(statuses=OPEN_STATUSES)
    except Exception as exc:
        logger.error("Status sweep could not list meetings: %s", exc, exc_info=True)
        return {"checked": 0, "completed": 0, "failed": 0, "list_failed": True}

    _, changed = advance_all(meetings, now)

    completed = 0
    failed    = 0
    for meeting in changed:
        try:
            store.update_meeting_status(meeting.id, meeting.status)
            completed += 1
        except Exception as exc:
            failed += 1
            logger.error(
                "Status sweep could not update meeting %s: %s",
                meeting.id,
                exc,
                exc_info=True,
            )

    result = {
        "checked":     len(meetings),
        "completed":   completed,
        "failed":      failed,
        "list_failed": False,
    }
    logger.info("Meeting status sweep finished: %s", result)
    return result


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    run_status_sweep()


if __name__ == "__main__":
    main()
