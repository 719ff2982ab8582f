from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv


def load_env(path: Optional[Union[str, Path]] = None) -> bool:
    """Load .env from the working directory (or ``path``) if present.

    Variables already set in the environment win. Returns True if a file
    was loaded.
    """
    env_path = Path(path) if path is not None else Path.cwd() / ".env"
    if not env_path.exists():
        return False
    return load_dotenv(dotenv_path=env_path)
