"""
Subtitles - caption chunking and SRT rendering
"""

from typing import List, Tuple

from reelsmith.config.constants import SUBTITLE_MAX_CHARS


def chunk_caption(text: str, max_chars: int = SUBTITLE_MAX_CHARS) -> List[str]:
    """
    Split caption text into chunks of at most max_chars

    Words are kept whole where they fit; a single word longer than the
    limit is split across chunks.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")

    chunks: List[str] = []
    current = ""
    for word in text.split():
        while len(word) > max_chars:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(word[:max_chars])
            word = word[max_chars:]
        if not word:
            continue
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= max_chars:
            current = candidate
        else:
            chunks.append(current)
            current = word
    if current:
        chunks.append(current)
    return chunks


def distribute(chunks: List[str], duration_s: float) -> List[Tuple[int, int, str]]:
    """
    Spread chunks evenly over the duration

    Returns:
        (start_ms, end_ms, text) ranges that are contiguous, non-overlapping
        and end exactly at the duration
    """
    if not chunks:
        return []
    total_ms = int(round(duration_s * 1000))
    count = len(chunks)
    bounds = [round(total_ms * i / count) for i in range(count + 1)]
    return [(bounds[i], bounds[i + 1], chunk) for i, chunk in enumerate(chunks)]


def format_timestamp(ms: int) -> str:
    """Milliseconds to HH:MM:SS,mmm"""
    hours, rest = divmod(ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    seconds, millis = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d},{millis:03d}"


def build_srt(text: str, duration_s: float, max_chars: int = SUBTITLE_MAX_CHARS) -> str:
    """Render caption text as an SRT document covering the whole duration"""
    entries = []
    for index, (start, end, chunk) in enumerate(distribute(chunk_caption(text, max_chars), duration_s), start=1):
        entries.append(f"{index}\n{format_timestamp(start)} --> {format_timestamp(end)}\n{chunk}\n")
    return "\n".join(entries)
