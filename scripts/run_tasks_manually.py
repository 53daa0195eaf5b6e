# run_tasks_manually.py
import logging
import sys
import os

# Хак для корректной работы импортов
sys.path.append(os.getcwd())

from app.tasks_registry import TASKS


def main(task_names):
    """
    Поочередно запускает фоновые задачи из реестра.
    Без аргументов запускает все задачи.
    """
    print("--- Manual Task Runner ---")
    names = task_names or list(TASKS)
    unknown = [name for name in names if name not in TASKS]
    if unknown:
        print(f"Unknown tasks: {', '.join(unknown)}. Available: {', '.join(TASKS)}")
        sys.exit(1)

    for index, name in enumerate(names, start=1):
        print(f"\n[{index}/{len(names)}] Running: {name}...")
        TASKS[name]["function"]()
        print("Done.")

    print("\n--- All tasks completed! ---")


if __name__ == "__main__":
    # Настраиваем логирование, чтобы видеть вывод от наших сервисов
    logging.basicConfig(level=logging.INFO, stream=sys.stdout, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    try:
        main(sys.argv[1:])
    except KeyboardInterrupt:
        print("\nScript interrupted by user.")
