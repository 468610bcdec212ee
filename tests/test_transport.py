"""Tests for the pexpect engine transport against a tiny scripted engine process."""

import asyncio
import sys
import threading

import pytest

from maiakit.engine import PexpectTransport, SearchStreamer, UCIEngineError

STUB_ENGINE = """
import sys
while True:
    line = sys.stdin.readline()
    if not line:
        break
    cmd = line.strip()
    if cmd == "uci":
        print("id name StubFish")
        print("uciok", flush=True)
    elif cmd == "isready":
        print("readyok", flush=True)
    elif cmd == "quit":
        break
"""


def _stub_transport() -> PexpectTransport:
    return PexpectTransport(sys.executable, ["-u", "-c", STUB_ENGINE])


class TestPexpectTransport:
    """Line exchange with a real subprocess."""

    def test_exchange_lines(self) -> None:
        received: list[str] = []
        got_uciok = threading.Event()

        def on_message(line: str) -> None:
            received.append(line)
            if line == "uciok":
                got_uciok.set()

        with _stub_transport() as transport:
            transport.listen(on_message, lambda message: None)
            transport.send("uci")
            assert got_uciok.wait(timeout=10)

        assert received[:2] == ["id name StubFish", "uciok"]

    def test_send_after_close(self) -> None:
        transport = _stub_transport()
        transport.close()
        with pytest.raises(UCIEngineError, match="not running"):
            transport.send("uci")

    def test_missing_binary(self) -> None:
        with pytest.raises(UCIEngineError, match="Failed to start"):
            PexpectTransport("/nonexistent/stockfish")

    def test_unexpected_exit_is_reported(self) -> None:
        errors: list[str] = []
        failed = threading.Event()

        def on_error(message: str) -> None:
            errors.append(message)
            failed.set()

        transport = PexpectTransport(sys.executable, ["-c", "print('bye')"])
        transport.listen(lambda line: None, on_error)
        try:
            assert failed.wait(timeout=10)
        finally:
            transport.close()

        assert "terminated" in errors[0]

    def test_streamer_handshake_over_pexpect(self) -> None:
        async def run() -> SearchStreamer:
            streamer = await SearchStreamer.create(_stub_transport, handshake_timeout=10)
            ready = streamer.ready
            streamer.close()
            assert ready
            return streamer

        streamer = asyncio.run(run())
        assert not streamer.ready
