import asyncio
import sys

from dotenv import load_dotenv
from loguru import logger

from api_logger.app_config import load_json_config, parse_app_config
from api_logger.bootstrap import bootstrap_runtime
from api_logger.console import RecorderConsole


async def main() -> None:
    load_dotenv()

    try:
        app = parse_app_config(load_json_config())
    except ValueError as ex:
        print(f"Invalid config.json: {ex}", file=sys.stderr)
        sys.exit(1)

    runtime = await bootstrap_runtime(app)
    console = RecorderConsole(runtime)

    state = runtime.machine.get_state()
    print("api-logger (type '/help' for commands, '/quit' to exit)")
    print(f"Database: {runtime.store.db_path}")
    print(f"State: {state.current_state.value}")
    if app.lifecycle_exports:
        print("Exports: routed through the recording lifecycle")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    try:
        while True:
            try:
                user_input = input(console.prompt)
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()
            if trimmed in ("/quit", "exit", "quit"):
                break
            if not trimmed:
                continue

            try:
                if not await console.handle(trimmed):
                    print("Commands start with '/'; try /help")
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        runtime.store.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
