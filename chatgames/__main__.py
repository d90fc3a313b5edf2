"""Entry point for running the chat games bot via python -m chatgames"""

import asyncio

from chatgames.runtime import main


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
