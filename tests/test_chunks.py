from sprig.chunks import ChunkAccumulator


def test_add_chunk_hands_whole_buffer_to_listener():
    seen = []
    acc = ChunkAccumulator(seen.append)

    acc.add_chunk("ab")
    acc.add_chunk("cd")

    assert seen == ["ab", "abcd"]
    assert acc.buffer == "abcd"


def test_clear_buffer_drops_consumed_prefix():
    acc = ChunkAccumulator(lambda _: None)
    acc.add_chunk("hello world")

    acc.clear_buffer(6)
    assert acc.buffer == "world"

    acc.clear_buffer(0)
    assert acc.buffer == "world"

    acc.clear_buffer(100)
    assert acc.buffer == ""


def test_empty_chunk_is_ignored():
    seen = []
    acc = ChunkAccumulator(seen.append)
    acc.add_chunk("")
    assert seen == []


def test_listener_may_consume_during_callback():
    acc = None
    consumed = []

    def on_content(buffer: str) -> None:
        newline = buffer.find("\n")
        while newline >= 0:
            consumed.append(acc.buffer[:newline])
            acc.clear_buffer(newline + 1)
            newline = acc.buffer.find("\n")

    acc = ChunkAccumulator(on_content)
    for piece in ["one\ntw", "o\nthr", "ee"]:
        acc.add_chunk(piece)

    assert consumed == ["one", "two"]
    assert acc.buffer == "three"
