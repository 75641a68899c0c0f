"""Best-effort cleanup used around scenarios.

Cleanup operations log errors but don't raise: they run after a scenario
has already produced its verdict, and the post-scenario reap is what
decides whether anything leaked.
"""

from pathlib import Path

import aiofiles.os

from cfdev_lifecycle import constants
from cfdev_lifecycle._logging import get_logger
from cfdev_lifecycle.control_surface import ControlSession

logger = get_logger(__name__)


async def cleanup_session(
    session: ControlSession | None,
    term_timeout: float = constants.SESSION_TERM_TIMEOUT_SECONDS,
    kill_timeout: float = constants.SESSION_KILL_TIMEOUT_SECONDS,
) -> bool:
    """Stop a control session if it is still running (SIGTERM → SIGKILL).

    Args:
        session: Session to stop (None safe - returns immediately)
        term_timeout: Seconds to wait after SIGTERM before SIGKILL
        kill_timeout: Seconds to wait after SIGKILL before giving up

    Returns:
        True if the session is gone, False if it could not be stopped
    """
    if session is None:
        return True

    try:
        if session.returncode is not None:
            logger.debug(
                f"{session.name} already exited",
                extra={"returncode": session.returncode},
            )
            return True

        logger.debug(f"Sending SIGTERM to {session.name}", extra={"pid": session.pid})
        await session.terminate()
        try:
            await session.wait_with_timeout(term_timeout)
            logger.debug(f"{session.name} stopped (SIGTERM)", extra={"returncode": session.returncode})
            return True
        except TimeoutError:
            logger.warning(
                f"{session.name} didn't respond to SIGTERM, force killing",
                extra={"pid": session.pid, "term_timeout": term_timeout},
            )

        await session.kill()
        try:
            await session.wait_with_timeout(kill_timeout)
            logger.warning(f"{session.name} force killed (SIGKILL)", extra={"returncode": session.returncode})
            return True
        except TimeoutError:
            logger.error(
                f"{session.name} didn't respond to SIGKILL within timeout",
                extra={"pid": session.pid, "kill_timeout": kill_timeout},
            )
            return False

    except ProcessLookupError:
        logger.debug(f"{session.name} already dead (ProcessLookupError)")
        return True

    except Exception as e:
        logger.error(
            f"{session.name} cleanup error",
            extra={"error": str(e), "error_type": type(e).__name__},
            exc_info=True,
        )
        return False

    finally:
        await session.close()


async def cleanup_file(file_path: Path | None, description: str = "file") -> bool:
    """Delete a file, succeeding if it doesn't exist.

    Args:
        file_path: Path to delete (None safe - returns immediately)
        description: Description for logging (e.g., "stale proxy settings")

    Returns:
        True if the file is gone, False if deletion failed
    """
    if file_path is None:
        return True

    try:
        await aiofiles.os.remove(file_path)
        logger.debug(f"{description} deleted", extra={"path": str(file_path)})
        return True

    except FileNotFoundError:
        return True

    except OSError as e:
        logger.error(
            f"{description} could not be deleted",
            extra={"path": str(file_path), "error": str(e), "error_type": type(e).__name__},
        )
        return False
