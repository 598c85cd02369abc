"""CLI script to manually run the scheduled notification sweep."""
from __future__ import annotations

import argparse

from app.tasks.notifications import cleanup_notification_logs, process_due_tasks


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Manually process due notification tasks",
    )
    parser.add_argument(
        "--limit",
        type=int,
        help="Maximum number of due tasks to process (default: DUE_TASK_BATCH_SIZE)",
    )
    parser.add_argument(
        "--cleanup-logs",
        action="store_true",
        help="Prune old notification logs instead of processing due tasks",
    )
    parser.add_argument(
        "--async",
        action="store_true",
        dest="use_async",
        help="Queue task asynchronously instead of running immediately",
    )

    args = parser.parse_args()

    if args.cleanup_logs:
        print("Cleaning up old notification logs")
        if args.use_async:
            task = cleanup_notification_logs.apply_async()
            print(f"Task queued: {task.id}")
        else:
            result = cleanup_notification_logs.run()
            print(f"Result: {result}")
    else:
        print("Processing due notification tasks")
        if args.use_async:
            task = process_due_tasks.apply_async(args=(args.limit,))
            print(f"Task queued: {task.id}")
        else:
            result = process_due_tasks.run(args.limit)
            print(f"Result: {result}")


if __name__ == "__main__":
    main()
