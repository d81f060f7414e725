"""Fire-and-forget execution of up/down commands."""

import asyncio
import logging
from typing import Set

from icmpmonitor.metrics import actions_failed_total, actions_total

logger = logging.getLogger(__name__)

ACTION_UP = "up"
ACTION_DOWN = "down"


class CommandRunner:
    """Run operator commands through the shell without waiting for them.

    run() only schedules the command on the running event loop; the exit
    status is logged once the process finishes. Failures never reach the
    caller.
    """

    def __init__(self) -> None:
        # Strong references so pending commands are not garbage collected
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def run(self, host: str, action: str, command: str) -> None:
        """Start the command for a host transition and return immediately.

        Args:
            host: Host name, for logging.
            action: ACTION_UP or ACTION_DOWN.
            command: Shell command line from the hosts file.
        """
        if not command.strip():
            logger.debug("No %s command configured for %s", action.upper(), host)
            return

        actions_total.labels(host=host, action=action).inc()
        task = asyncio.get_running_loop().create_task(self._execute(host, action, command))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, host: str, action: str, command: str) -> None:
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            returncode = await proc.wait()
        except OSError as e:
            actions_failed_total.labels(host=host, action=action).inc()
            logger.error("%s command for %s could not be started: %s", action.upper(), host, e)
            return

        if returncode == 0:
            logger.debug("%s command for %s finished", action.upper(), host)
        else:
            actions_failed_total.labels(host=host, action=action).inc()
            logger.warning(
                "%s command for %s failed (exit code %d)",
                action.upper(),
                host,
                returncode,
            )
