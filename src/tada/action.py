"""Action executor: runs configured commands and scripts.

Each invocation spawns one subprocess, captures its output in full, and
kills it (together with anything it spawned) when the action's timeout
expires.
"""

from __future__ import annotations

import asyncio
import json
import os
import signal
from collections.abc import Mapping, Sequence
from typing import Any

from tada.logging import get_logger
from tada.models import ActionResult
from tada.schema import Action

log = get_logger("tada.action")


def find_action(actions: Sequence[Action], name: str) -> Action | None:
    return next((a for a in actions if a.name == name), None)


def build_argv(action: Action) -> list[str] | str:
    """Return the argv for *action*, or an error message if it is malformed."""
    if not action.script and not action.command:
        return f"Action \"{action.name}\" must have either 'script' or 'command'"
    if action.script and action.command:
        return f"Action \"{action.name}\" cannot have both 'script' and 'command'"

    if isinstance(action.command, tuple):
        return list(action.command)
    if action.command:
        return ["sh", "-c", action.command]
    return ["sh", str(action.script)]


async def run_action(
    actions: Sequence[Action],
    name: str,
    payload: Mapping[str, Any],
) -> ActionResult:
    """Run the action called *name* with *payload* exported as ``$PAYLOAD``.

    Unknown or malformed actions produce a failed result without spawning
    anything. Spawned processes always run to exit (or are killed on
    timeout) before their output is returned.
    """
    action = find_action(actions, name)
    if action is None:
        return ActionResult.failure(f"Unknown action: {name}")

    argv = build_argv(action)
    if isinstance(argv, str):
        return ActionResult.failure(argv)

    env = {**os.environ, "PAYLOAD": json.dumps(dict(payload))}

    log.info("action_started", action=name, argv=argv, cwd=action.cwd)
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=action.cwd,
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as exc:
        log.error("action_spawn_failed", action=name, error=str(exc))
        return ActionResult.failure(f"Failed to start action \"{name}\": {exc}")

    killer = _TimeoutKiller(proc, name, action.timeout)
    timer = asyncio.get_running_loop().call_later(action.timeout, killer.fire)
    try:
        # communicate() drains both pipes and waits for exit
        stdout, stderr = await proc.communicate()
    except asyncio.CancelledError:
        killer.kill()
        raise
    finally:
        timer.cancel()

    exit_code = proc.returncode if proc.returncode is not None else -1
    log.info("action_finished", action=name, exit_code=exit_code, timed_out=killer.fired)
    result = ActionResult(
        ok=exit_code == 0 and not killer.fired,
        exit_code=exit_code,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
    if killer.fired:
        result.error = f"Action \"{name}\" timed out after {action.timeout:g}s"
    return result


class _TimeoutKiller:
    """Timer target that SIGKILLs an action's whole process group."""

    def __init__(self, proc: asyncio.subprocess.Process, name: str, timeout: float) -> None:
        self._proc = proc
        self._name = name
        self._timeout = timeout
        self.fired = False

    def fire(self) -> None:
        self.fired = True
        log.warning(
            "action_timed_out", action=self._name, timeout=self._timeout, pid=self._proc.pid
        )
        self.kill()

    def kill(self) -> None:
        try:
            # The process leads its own session, so this also reaches children of
            # `sh -c` that may still hold the output pipes after the leader exits.
            os.killpg(self._proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except PermissionError:
            if self._proc.returncode is None:
                self._proc.kill()
