"""clipreel - compile still images into a single video.

Entry points call validate_dependencies() before touching any job so a
missing ffmpeg is reported once at startup instead of on every compile.
"""

import logging
import shutil
import subprocess

__version__ = "0.1.0"

logger = logging.getLogger(__name__)


def validate_dependencies() -> str:
    """Check that a working ffmpeg binary is on PATH.

    Returns:
        The first line of ``ffmpeg -version``.

    Raises:
        RuntimeError: If ffmpeg is missing or exits with an error.
    """
    binary = shutil.which("ffmpeg")
    if binary is None:
        raise RuntimeError(
            "ffmpeg not found on PATH; it is required to compile videos.\n"
            "Ubuntu/Debian: sudo apt-get install ffmpeg\n"
            "macOS: brew install ffmpeg"
        )

    try:
        result = subprocess.run([binary, "-version"], capture_output=True, check=True, text=True)
    except (subprocess.CalledProcessError, OSError) as e:
        raise RuntimeError(f"ffmpeg at {binary} is not functional: {e}") from e

    version = result.stdout.splitlines()[0] if result.stdout else "unknown version"
    logger.info(f"Using {binary}: {version}")
    return version
