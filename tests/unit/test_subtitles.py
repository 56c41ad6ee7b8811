"""
Unit Tests for Subtitle Timing
"""

from reelsmith.services.subtitles import build_srt, chunk_caption, distribute, format_timestamp


def test_chunk_caption_wraps_on_words():
    chunks = chunk_caption("Sunlit kitchen with quartz counters and a large island for entertaining", max_chars=20)

    assert all(len(chunk) <= 20 for chunk in chunks)
    assert " ".join(chunks) == "Sunlit kitchen with quartz counters and a large island for entertaining"


def test_chunk_caption_hard_splits_long_words():
    assert chunk_caption("a" * 95, max_chars=40) == ["a" * 40, "a" * 40, "a" * 15]


def test_chunk_caption_empty_text():
    assert chunk_caption("   ") == []


def test_280_chars_over_10_seconds_gives_seven_contiguous_ranges():
    ranges = distribute(chunk_caption("a" * 280), 10.0)

    assert len(ranges) == 7
    assert ranges[0][0] == 0
    assert ranges[-1][1] == 10_000
    for (_, end, _), (start, _, _) in zip(ranges, ranges[1:]):
        assert end == start
    assert all(end > start for start, end, _ in ranges)


def test_format_timestamp():
    assert format_timestamp(0) == "00:00:00,000"
    assert format_timestamp(3_723_456) == "01:02:03,456"


def test_build_srt_numbers_cues():
    srt = build_srt("Welcome home", 4.0)

    assert srt.startswith("1\n00:00:00,000 --> 00:00:04,000\nWelcome home\n")


def test_build_srt_empty_caption_is_empty():
    assert build_srt("", 4.0) == ""
