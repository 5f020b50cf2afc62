"""Frontend build and preview server lifecycle."""

import asyncio
import os
import shlex
import signal
import subprocess
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import httpx
import structlog

from apos_static.utils.exceptions import (
    PreviewBuildError,
    PreviewServerError,
    PreviewServerTimeoutError,
)

logger = structlog.get_logger(__name__)


class PreviewState(str, Enum):
    """Lifecycle states of the preview server."""

    NOT_STARTED = "not_started"
    BUILDING = "building"
    STARTING = "starting"
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass
class PreviewServerHandle:
    """The running (or not yet running) preview server owned by one export run."""

    base_url: str
    state: PreviewState = PreviewState.NOT_STARTED
    process: subprocess.Popen | None = None
    build_process: asyncio.subprocess.Process | None = None
    history: list[PreviewState] = field(default_factory=list)

    def transition(self, state: PreviewState) -> None:
        """Move to a new state and record it."""
        self.history.append(state)
        self.state = state
        logger.debug("preview_state_changed", state=state.value)

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process else None


class PreviewServerSupervisor:
    """
    Build the frontend and run its preview server as a child process group.

    The supervisor holds no process state itself: everything lives on the
    ``PreviewServerHandle`` passed to ``start`` and ``shutdown``.

    Example:
        ```python
        supervisor = PreviewServerSupervisor(Path("frontend"), port=4321)
        handle = supervisor.new_handle()
        try:
            await supervisor.start(handle)
            ...
        finally:
            supervisor.shutdown(handle)
        ```
    """

    def __init__(
        self,
        frontend_dir: Path,
        host: str = "127.0.0.1",
        port: int = 4321,
        build_command: str = "npm run build",
        preview_command: str = "npm run preview -- --host {host} --port {port}",
        env: Mapping[str, str] | None = None,
        skip_build: bool = False,
        ready_timeout: float = 90.0,
        poll_interval: float = 1.0,
        shutdown_grace: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the supervisor.

        Args:
            frontend_dir: Directory the build and preview commands run in
            host: Interface the preview server binds to
            port: Port the preview server listens on
            build_command: Production build command
            preview_command: Preview command; {host} and {port} are substituted
            env: Extra environment variables for both commands
            skip_build: Skip the build step and serve the existing build
            ready_timeout: Seconds to wait for the server to answer
            poll_interval: Seconds between readiness polls
            shutdown_grace: Seconds to wait after SIGTERM before SIGKILL
            transport: Optional httpx transport for readiness polling
        """
        self.frontend_dir = frontend_dir
        self.host = host
        self.port = port
        self.build_command = build_command
        self.preview_command = preview_command
        self.env = dict(env or {})
        self.skip_build = skip_build
        self.ready_timeout = ready_timeout
        self.poll_interval = poll_interval
        self.shutdown_grace = shutdown_grace
        self.transport = transport

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def new_handle(self) -> PreviewServerHandle:
        """Create a handle for this supervisor's preview server."""
        return PreviewServerHandle(base_url=self.base_url)

    def _child_env(self) -> dict[str, str]:
        env = os.environ.copy()
        env.update(self.env)
        env["HOST"] = self.host
        env["PORT"] = str(self.port)
        return env

    async def start(self, handle: PreviewServerHandle) -> None:
        """
        Build the frontend, launch the preview server and wait for it.

        Raises:
            PreviewBuildError: If the build command exits non-zero
            PreviewServerError: If the preview process cannot be spawned or exits early
            PreviewServerTimeoutError: If the server never answers within the deadline
        """
        try:
            if not self.skip_build:
                handle.transition(PreviewState.BUILDING)
                await self._build(handle)

            handle.transition(PreviewState.STARTING)
            self._spawn(handle)
            await self.wait_until_ready(handle)
        except PreviewServerError:
            handle.transition(PreviewState.FAILED)
            raise

        handle.transition(PreviewState.READY)
        logger.info("preview_server_ready", url=handle.base_url, pid=handle.pid)

    async def _build(self, handle: PreviewServerHandle) -> None:
        command = shlex.split(self.build_command)
        logger.info("frontend_build_started", command=self.build_command, cwd=str(self.frontend_dir))
        start = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=self.frontend_dir,
                env=self._child_env(),
                stdin=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise PreviewBuildError(f"Cannot run build command {self.build_command!r}: {e}") from e

        handle.build_process = process
        try:
            returncode = await process.wait()
        except asyncio.CancelledError:
            logger.warning("frontend_build_cancelled", pid=process.pid)
            _signal_group(process, signal.SIGKILL)
            raise

        if returncode != 0:
            raise PreviewBuildError(
                f"Build command {self.build_command!r} exited with code {returncode}"
            )
        logger.info("frontend_build_finished", seconds=round(time.monotonic() - start, 2))

    def _spawn(self, handle: PreviewServerHandle) -> None:
        command = shlex.split(self.preview_command.format(host=self.host, port=self.port))
        try:
            # New session so shutdown can signal the whole process group
            handle.process = subprocess.Popen(
                command,
                cwd=self.frontend_dir,
                env=self._child_env(),
                stdin=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise PreviewServerError(
                f"Cannot start preview command {self.preview_command!r}: {e}"
            ) from e
        logger.info("preview_server_spawned", pid=handle.pid, command=" ".join(command))

    async def wait_until_ready(self, handle: PreviewServerHandle) -> None:
        """
        Poll the server root until it answers with a 2xx response.

        Raises:
            PreviewServerError: If the child process exits while waiting
            PreviewServerTimeoutError: If the deadline passes first
        """
        deadline = time.monotonic() + self.ready_timeout
        attempts = 0
        async with httpx.AsyncClient(
            base_url=handle.base_url,
            timeout=max(self.poll_interval, 1.0),
            transport=self.transport,
        ) as client:
            while True:
                attempts += 1
                if handle.process is not None and handle.process.poll() is not None:
                    raise PreviewServerError(
                        f"Preview server exited with code {handle.process.returncode} before becoming ready"
                    )
                try:
                    response = await client.get("/")
                    if response.is_success:
                        logger.debug("preview_server_answered", attempts=attempts)
                        return
                    logger.debug("preview_server_not_ready", attempt=attempts, status=response.status_code)
                except httpx.HTTPError as e:
                    logger.debug("preview_server_not_ready", attempt=attempts, error=str(e))

                if time.monotonic() + self.poll_interval > deadline:
                    raise PreviewServerTimeoutError(
                        f"Preview server at {handle.base_url} not ready after {self.ready_timeout:.0f}s"
                    )
                await asyncio.sleep(self.poll_interval)

    def shutdown(self, handle: PreviewServerHandle) -> None:
        """
        Stop the preview server and everything it forked.

        SIGTERM goes to the whole process group, then after the leader exits
        or the grace period runs out SIGKILL goes to the group as well, so
        descendants that ignore SIGTERM do not outlive the run. An unfinished
        build is killed the same way. Safe to call more than once and on
        handles whose process never started.
        """
        build = handle.build_process
        if build is not None and build.returncode is None:
            logger.warning("frontend_build_kill", pid=build.pid)
            _signal_group(build, signal.SIGKILL)

        process = handle.process
        if process is None:
            if handle.state not in (PreviewState.FAILED, PreviewState.STOPPED):
                handle.transition(PreviewState.STOPPED)
            return
        if handle.state == PreviewState.STOPPED:
            return

        handle.transition(PreviewState.SHUTTING_DOWN)
        logger.info("preview_server_stopping", pid=process.pid)
        _signal_group(process, signal.SIGTERM)
        try:
            process.wait(timeout=self.shutdown_grace)
        except subprocess.TimeoutExpired:
            logger.warning("preview_server_kill", pid=process.pid)
        # The group outlives its leader when a descendant ignored SIGTERM
        _signal_group(process, signal.SIGKILL)
        process.wait()
        handle.transition(PreviewState.STOPPED)


def _signal_group(
    process: subprocess.Popen | asyncio.subprocess.Process, sig: signal.Signals
) -> None:
    # start_new_session makes the child its own group leader, so pgid == pid
    try:
        os.killpg(process.pid, sig)
    except ProcessLookupError:
        pass
