"""Environment loading helpers.

Not invoked at import time; the CLI entrypoint calls them explicitly.
"""

from __future__ import annotations

from dotenv import find_dotenv, load_dotenv


def load_dotenv_if_present() -> bool:
    """Load variables from the nearest .env file; return whether one was found."""

    dotenv_path = find_dotenv(filename=".env", usecwd=True)
    if not dotenv_path:
        return False
    load_dotenv(dotenv_path=dotenv_path)
    return True
