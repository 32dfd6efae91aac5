# run_tasks_manually.py
import argparse
import asyncio

from app.core.logging_config import setup_logging
from app.db.session import SessionLocal
from app.services.ledger import create_ledger_service
from app.tasks_registry import TASKS


async def main(task_names: list[str], dry_run: bool):
    """
    Поочередный запуск фоновых задач из реестра вне планировщика.
    """
    print("--- Manual Task Runner ---")
    print(f"Starting tasks sequentially (dry-run: {dry_run})...\n")

    ledger = create_ledger_service(SessionLocal).ledger

    for index, name in enumerate(task_names, start=1):
        print(f"\n[{index}/{len(task_names)}] Running: {name}...")
        result = await TASKS[name]["function"](ledger, SessionLocal, dry_run=dry_run)
        print(f"Done. Result: {result}")

    print("\n--- All tasks finished ---")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run loyalty background tasks manually.")
    parser.add_argument("tasks", nargs="*", help=f"Task names, all by default: {', '.join(TASKS)}")
    parser.add_argument("--dry-run", action="store_true", help="Only count what would change.")
    args = parser.parse_args()

    unknown = [name for name in args.tasks if name not in TASKS]
    if unknown:
        parser.error(f"Unknown tasks: {', '.join(unknown)}")

    setup_logging()
    asyncio.run(main(args.tasks or list(TASKS), args.dry_run))
