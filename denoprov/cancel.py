"""
Cancellation for provisioning runs.

A run blocks on remote commands, file transfers and the local bundler.
A CancelToken lets the caller abort any of those waits. Subprocess-backed
communicators poll the token themselves and stop the process in flight.
Any other blocking call runs on a worker thread while the calling thread
polls the token; on cancel the worker gets join_timeout seconds to wind
down before the caller moves on.
"""

import logging
import threading
from typing import Any, BinaryIO, Callable, Optional

from denoprov.communicators.base import CommandResult, Communicator
from denoprov.errors import RunCancelled

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.1
DEFAULT_JOIN_TIMEOUT = 10.0


class CancelToken:
    """
    Caller-owned cancellation signal for one run.

    Usage:
        token = CancelToken()
        signal.signal(signal.SIGINT, lambda *_: token.cancel())
        result = Provisioner(communicator, cancel=token).run(plan)
    """

    def __init__(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        join_timeout: float = DEFAULT_JOIN_TIMEOUT,
    ):
        self._event = threading.Event()
        self.poll_interval = poll_interval
        self.join_timeout = join_timeout

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or timeout; returns True if cancelled."""
        return self._event.wait(timeout)

    def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Run a blocking call while observing cancellation.

        Returns:
            Whatever func returns

        Raises:
            RunCancelled: If the token fires before or during the call
            Exception: Whatever func raises
        """
        self.raise_if_cancelled()

        outcome: dict[str, Any] = {}

        def _target() -> None:
            try:
                outcome["value"] = func(*args, **kwargs)
            except BaseException as e:
                outcome["error"] = e

        worker = threading.Thread(target=_target, name="denoprov-call", daemon=True)
        worker.start()

        while True:
            worker.join(self.poll_interval)
            if not worker.is_alive():
                break
            if self._event.is_set():
                worker.join(self.join_timeout)
                if worker.is_alive():
                    logger.warning(
                        f"Cancelled call still running after {self.join_timeout}s: "
                        f"{getattr(func, '__name__', func)}",
                        extra={"event": "cancel_worker_abandoned"},
                    )
                error = outcome.get("error")
                if isinstance(error, RunCancelled):
                    raise error
                raise RunCancelled()

        if "error" in outcome:
            raise outcome["error"]
        return outcome.get("value")


class CancellableCommunicator(Communicator):
    """
    Communicator wrapper that routes every blocking call through a CancelToken.

    The token is also bound to the inner communicator so its subprocesses
    are stopped on cancel. Call release() when the run is over.
    """

    def __init__(self, inner: Communicator, token: CancelToken):
        self.inner = inner
        self.token = token
        self._previous = inner.bind_cancel(token)

    def release(self) -> None:
        """Unbind the token from the inner communicator."""
        self.inner.bind_cancel(self._previous)

    def run_command(self, command: str) -> CommandResult:
        return self.token.call(self.inner.run_command, command)

    def upload_file(self, remote_path: str, stream: BinaryIO) -> None:
        self.token.call(self.inner.upload_file, remote_path, stream)

    def create_directory(self, remote_path: str) -> None:
        self.token.call(self.inner.create_directory, remote_path)

    def describe(self) -> str:
        return self.inner.describe()
