"""Tests for frame parsing and the subscribe encoder."""

import json
import logging

import pytest

from pme_notify.errors import NotifyProtocolError
from pme_notify.protocol import FrameParser, encode_subscribe
from pme_notify.types import BufferInfo, RecoveryComplete, RecoveryStart, SequencedEvent

from tests.fakes import frame


def _decode_failures(caplog) -> int:
    return sum(1 for r in caplog.records if "Failed to decode" in r.getMessage())


class TestBatching:
    def test_two_events_in_order(self):
        units = FrameParser().parse(frame({"seq": 1, "event_type": "a"}, {"seq": 2, "event_type": "b"}))
        assert [u.seq for u in units] == [1, 2]
        assert [u.event_type for u in units] == ["a", "b"]

    def test_single_document(self):
        units = FrameParser().parse('{"seq": 5, "event_type": "trade", "data": {"trade_nid": 9}}')
        assert units == [SequencedEvent(seq=5, event_type="trade", data={"trade_nid": 9})]

    def test_blank_lines_skipped(self):
        raw = '\n  \n{"seq": 1, "event_type": "a"}\n\n\t\n{"seq": 2, "event_type": "b"}\n'
        assert [u.seq for u in FrameParser().parse(raw)] == [1, 2]

    def test_crlf_lines(self):
        raw = '{"seq": 1, "event_type": "a"}\r\n{"seq": 2, "event_type": "b"}\r\n'
        assert [u.seq for u in FrameParser().parse(raw)] == [1, 2]

    def test_bytes_frame(self):
        raw = frame({"seq": 3, "event_type": "x"}).encode()
        assert [u.seq for u in FrameParser().parse(raw)] == [3]

    def test_mixed_control_and_events_keep_order(self):
        raw = frame(
            {"type": "recovery_start", "count": 1},
            {"seq": 1, "event_type": "order"},
            {"type": "recovery_complete", "count": 1},
        )
        units = FrameParser().parse(raw)
        assert [type(u) for u in units] == [RecoveryStart, SequencedEvent, RecoveryComplete]


class TestFaultIsolation:
    def test_malformed_middle_line(self, caplog):
        caplog.set_level(logging.WARNING, logger="pme_notify")
        parser = FrameParser()
        raw = '{"seq": 1, "event_type": "a"}\n{"seq": 2, "event_ty\n{"seq": 3, "event_type": "c"}'
        units = parser.parse(raw)
        assert [u.seq for u in units] == [1, 3]
        assert _decode_failures(caplog) == 1
        assert parser.get_stats()["decode_errors"] == 1

    def test_non_object_document_is_decode_failure(self, caplog):
        caplog.set_level(logging.WARNING, logger="pme_notify")
        units = FrameParser().parse('[1, 2]\n{"seq": 1, "event_type": "a"}')
        assert len(units) == 1
        assert _decode_failures(caplog) == 1

    def test_unrecognized_shape_dropped(self, caplog):
        caplog.set_level(logging.WARNING, logger="pme_notify")
        parser = FrameParser()
        units = parser.parse(frame({"type": "hello"}, {"seq": 1, "event_type": "a"}))
        assert [u.seq for u in units] == [1]
        assert parser.get_stats()["unrecognized"] == 1
        assert "Unknown message shape" in caplog.text

    @pytest.mark.parametrize("seq", ["7", -1, 1.5, True, None])
    def test_invalid_seq_is_unrecognized(self, seq):
        parser = FrameParser()
        assert parser.parse(json.dumps({"seq": seq, "event_type": "a"})) == []
        assert parser.get_stats()["unrecognized"] == 1

    def test_oversized_frame_dropped(self):
        parser = FrameParser(max_frame_size=10)
        assert parser.parse(frame({"seq": 1, "event_type": "a"})) == []

    def test_invalid_utf8_bytes(self):
        parser = FrameParser()
        assert parser.parse(b"\xff\xfe") == []
        assert parser.get_stats()["decode_errors"] == 1

    def test_decode_line_raises(self):
        with pytest.raises(NotifyProtocolError) as exc_info:
            FrameParser().decode_line("{oops")
        assert exc_info.value.line == "{oops"


class TestClassification:
    def test_recovery_start_fields(self):
        raw = json.dumps(
            {
                "type": "recovery_start",
                "requested_seq": 0,
                "oldest_seq": 1,
                "latest_seq": 12,
                "count": 12,
                "all_available": True,
            }
        )
        (unit,) = FrameParser().parse(raw)
        assert unit == RecoveryStart(
            requested_seq=0, oldest_seq=1, latest_seq=12, count=12, all_available=True
        )
        assert unit.raw["type"] == "recovery_start"

    def test_recovery_complete_fields(self):
        (unit,) = FrameParser().parse('{"type": "recovery_complete", "count": 3, "latest_seq": 9}')
        assert unit == RecoveryComplete(count=3, latest_seq=9)

    def test_buffer_info_fields(self):
        raw = '{"type": "buffer_info", "size": 4, "capacity": 1000, "oldest_seq": 1, "latest_seq": 4}'
        (unit,) = FrameParser().parse(raw)
        assert unit == BufferInfo(size=4, capacity=1000, oldest_seq=1, latest_seq=4)

    def test_control_discriminant_wins_over_seq(self):
        (unit,) = FrameParser().parse('{"type": "buffer_info", "seq": 4}')
        assert isinstance(unit, BufferInfo)

    def test_event_defaults(self):
        (unit,) = FrameParser().parse('{"seq": 2}')
        assert unit.event_type == "unknown"
        assert unit.data == {}

    def test_event_type_falls_back_to_type(self):
        (unit,) = FrameParser().parse('{"seq": 2, "type": "system"}')
        assert unit.event_type == "system"

    def test_non_mapping_data_wrapped(self):
        (unit,) = FrameParser().parse('{"seq": 2, "event_type": "x", "data": [1, 2]}')
        assert unit.data == {"value": [1, 2]}

    def test_stats(self):
        parser = FrameParser()
        parser.parse(frame({"seq": 1, "event_type": "a"}, {"seq": 2, "event_type": "b"}))
        parser.parse("garbage")
        assert parser.get_stats() == {
            "frames": 2,
            "units": 2,
            "decode_errors": 1,
            "unrecognized": 0,
        }
        parser.reset()
        assert parser.get_stats()["frames"] == 0


class TestSubscribe:
    def test_encode_subscribe(self):
        assert json.loads(encode_subscribe(0)) == {"type": "subscribe", "from_seq": 0}
        assert json.loads(encode_subscribe(42)) == {"type": "subscribe", "from_seq": 42}

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            encode_subscribe(-1)
