"""Tests for conduit.stream.lines.LineDemultiplexer."""

from __future__ import annotations

import json

import pytest

from conduit.stream.lines import LineDemultiplexer, iter_records, split_records
from tests.mock_events import collect


async def _fragments(pieces: list[str]):
    for piece in pieces:
        yield piece


class TestFeed:
    def test_complete_line(self):
        demux = LineDemultiplexer()
        assert demux.feed('{"a": 1}\n') == [{"a": 1}]
        assert demux.pending == ""

    def test_record_split_across_fragments(self):
        demux = LineDemultiplexer()
        assert demux.feed('{"type": "te') == []
        assert demux.feed('xt", "n": 1') == []
        assert demux.feed("}\n") == [{"type": "text", "n": 1}]

    def test_several_records_in_one_fragment(self):
        demux = LineDemultiplexer()
        records = demux.feed('{"n": 1}\n{"n": 2}\n{"n": 3')
        assert records == [{"n": 1}, {"n": 2}]
        assert demux.pending == '{"n": 3'

    def test_blank_lines_dropped(self):
        demux = LineDemultiplexer()
        assert demux.feed('\n\n   \n{"n": 1}\n\n') == [{"n": 1}]
        assert demux.dropped == 0

    def test_crlf_tolerated(self):
        demux = LineDemultiplexer()
        assert demux.feed('{"n": 1}\r\n{"n": 2}\r\n') == [{"n": 1}, {"n": 2}]

    def test_non_json_dropped_and_counted(self):
        demux = LineDemultiplexer()
        records = demux.feed('npm WARN deprecated\n{"ok": true}\n')
        assert records == [{"ok": True}]
        assert demux.dropped == 1

    def test_non_object_json_dropped(self):
        demux = LineDemultiplexer()
        assert demux.feed('[1, 2]\n"text"\n42\n') == []
        assert demux.dropped == 3

    def test_empty_fragment(self):
        demux = LineDemultiplexer()
        assert demux.feed("") == []


class TestClose:
    def test_flushes_final_record_without_newline(self):
        demux = LineDemultiplexer()
        demux.feed('{"n": 1}\n{"n": 2}')
        assert demux.close() == [{"n": 2}]
        assert demux.pending == ""

    def test_close_with_partial_garbage(self):
        demux = LineDemultiplexer()
        demux.feed('{"n": ')
        assert demux.close() == []
        assert demux.dropped == 1

    def test_close_empty(self):
        assert LineDemultiplexer().close() == []


class TestSplitting:
    @pytest.mark.parametrize("size", [1, 2, 3, 7, 16, 1000])
    def test_any_fragmentation_yields_same_records(self, size):
        records = [{"type": "a", "text": "héllo"}, {"type": "b", "n": [1, 2]}, {"type": "c"}]
        text = "".join(json.dumps(r, ensure_ascii=False) + "\n" for r in records)
        pieces = [text[i : i + size] for i in range(0, len(text), size)]
        assert split_records(pieces) == records

    @pytest.mark.asyncio
    async def test_iter_records(self):
        pieces = ['{"n"', ': 1}\n{"n": 2}', "\nnoise\n", '{"n": 3}']
        records = await collect(iter_records(_fragments(pieces)))
        assert records == [{"n": 1}, {"n": 2}, {"n": 3}]


def test_malformed_line_between_valid_lines():
    demux = LineDemultiplexer()
    records = demux.feed('{"n": 1}\nnot json\n{"n": 2}\n')
    assert records == [{"n": 1}, {"n": 2}]
