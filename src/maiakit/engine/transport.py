"""Line transports to UCI search engines.

The streamer never talks to a process directly; it goes through an
``EngineTransport`` that sends command lines and delivers every output line
to a listener. ``PexpectTransport`` runs a real engine binary with pexpect
and pumps its output on a daemon thread.
"""

import shlex
import threading
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Protocol

import pexpect
from loguru import logger

MessageCallback = Callable[[str], None]
ErrorCallback = Callable[[str], None]


class UCIEngineError(Exception):
    """Raised when UCI communication fails."""

    pass


class EngineTransport(Protocol):
    """Bidirectional line channel to a UCI engine."""

    def listen(self, on_message: MessageCallback, on_error: ErrorCallback) -> None:
        """Register the callbacks for output lines and transport failures."""
        ...

    def send(self, line: str) -> None:
        """Send one command line to the engine."""
        ...

    def close(self) -> None:
        """Terminate the engine and release its resources."""
        ...


class PexpectTransport:
    """Engine subprocess driven through pexpect.

    Output is read line by line on a daemon thread, so listener callbacks run
    on that thread, not on the caller's event loop.

    Example:
        transport = PexpectTransport("/usr/bin/stockfish")
        transport.listen(print, print)
        transport.send("uci")
        transport.close()
    """

    def __init__(
        self,
        binary_path: str | Path,
        args: Sequence[str] = (),
    ) -> None:
        """Start the engine subprocess.

        Args:
            binary_path: Path or name of the UCI engine executable.
            args: Extra command-line arguments.

        Raises:
            UCIEngineError: If the process cannot be started.
        """
        self.binary_path = str(binary_path)
        self.args = list(args)
        self._on_message: MessageCallback | None = None
        self._on_error: ErrorCallback | None = None
        self._lock = threading.Lock()
        self._closing = False

        cmd = " ".join(shlex.quote(part) for part in [self.binary_path, *self.args])
        logger.debug(f"Starting UCI engine: {cmd}")
        try:
            self._child: pexpect.spawn | None = pexpect.spawn(
                self.binary_path,
                self.args,
                encoding="utf-8",
                timeout=None,
                echo=False,
            )
        except pexpect.ExceptionPexpect as e:
            raise UCIEngineError(f"Failed to start engine {cmd}: {e}") from e

        self._reader = threading.Thread(target=self._pump, name="uci-reader", daemon=True)

    def listen(self, on_message: MessageCallback, on_error: ErrorCallback) -> None:
        self._on_message = on_message
        self._on_error = on_error
        if not self._reader.is_alive():
            self._reader.start()

    def _pump(self) -> None:
        child = self._child
        while child is not None:
            try:
                line = child.readline()
            except (pexpect.ExceptionPexpect, OSError) as e:
                self._report_error(f"Engine read failed: {e}")
                return

            if not line:
                self._report_error("Engine process terminated unexpectedly")
                return

            line = line.strip()
            if line and self._on_message is not None:
                self._on_message(line)

    def _report_error(self, message: str) -> None:
        if self._closing:
            return
        logger.error(message)
        if self._on_error is not None:
            self._on_error(message)

    def send(self, line: str) -> None:
        with self._lock:
            if self._child is None:
                raise UCIEngineError("Engine not running")
            logger.trace(f"UCI send: {line}")
            self._child.sendline(line)

    def close(self) -> None:
        """Ask the engine to quit, terminating it if it does not comply."""
        self._closing = True
        with self._lock:
            child, self._child = self._child, None
        if child is None:
            return

        try:
            child.sendline("quit")
        except OSError as e:
            logger.debug(f"Engine did not accept quit: {e}")

        # The reader thread sees EOF once the engine exits
        if self._reader.is_alive():
            self._reader.join(timeout=2.0)
        child.close(force=True)
        logger.debug("UCI engine closed")

    def __enter__(self) -> "PexpectTransport":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
