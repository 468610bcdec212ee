"""UCI search engine streaming."""

from maiakit.engine.records import DepthAccumulator, EvaluationRecord, InfoLine, parse_info_line
from maiakit.engine.streamer import SearchStreamer, StreamerPhase
from maiakit.engine.transport import EngineTransport, PexpectTransport, UCIEngineError
from maiakit.engine.winrate import cp_to_winrate

__all__ = [
    "DepthAccumulator",
    "EngineTransport",
    "EvaluationRecord",
    "InfoLine",
    "PexpectTransport",
    "SearchStreamer",
    "StreamerPhase",
    "UCIEngineError",
    "cp_to_winrate",
    "parse_info_line",
]
