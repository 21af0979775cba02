import pytest

from wemp.errors import DeliveryError, Result, err, ok
from wemp.outbound import OutboundDispatcher, split_message


class _Sender:
    def __init__(self, fail_text_on: int | None = None, bad_images: set[str] | None = None) -> None:
        self.texts: list[str] = []
        self.images: list[str] = []
        self.fail_text_on = fail_text_on
        self.bad_images = bad_images or set()

    async def send_text(self, open_id: str, text: str) -> Result[None]:
        self.texts.append(text)
        if self.fail_text_on is not None and len(self.texts) == self.fail_text_on:
            return err(DeliveryError("rate limited", 45047))
        return ok()

    async def send_image_by_url(self, open_id: str, url: str) -> Result[None]:
        self.images.append(url)
        if url == "boom":
            raise RuntimeError("network down")
        if url in self.bad_images:
            return err("upload failed")
        return ok()

    async def send_media(self, open_id: str, msg_type: str, media_id: str) -> Result[None]:
        return ok()

    async def send_typing(self, open_id: str) -> Result[None]:
        return ok()


def test_split_hard_cuts_without_punctuation() -> None:
    parts = split_message("x" * 1500, 600)

    assert [len(p) for p in parts] == [600, 600, 300]


def test_split_prefers_punctuation_within_lookback() -> None:
    text = "a" * 550 + "。" + "b" * 100

    parts = split_message(text, 600)

    assert parts[0] == "a" * 550 + "。"
    assert "".join(parts) == text


def test_split_ignores_punctuation_beyond_lookback() -> None:
    text = "a" * 10 + "，" + "b" * 700

    parts = split_message(text, 600)

    assert len(parts[0]) == 600
    assert "".join(parts) == text


def test_split_chunks_fit_and_concatenate_exactly() -> None:
    text = ("这是一句话。" * 37 + "\n" + "没有标点的长段落" * 40 + "！") * 3

    parts = split_message(text, 100)

    assert all(0 < len(p) <= 100 for p in parts)
    assert "".join(parts) == text


def test_split_edge_cases() -> None:
    assert split_message("") == []
    assert split_message("short") == ["short"]
    assert split_message("x" * 600) == ["x" * 600]
    with pytest.raises(ValueError):
        split_message("abc", 0)


def test_default_pacing() -> None:
    dispatcher = OutboundDispatcher(_Sender())

    assert dispatcher.chunk_delay == pytest.approx(0.3)
    assert dispatcher.text_limit == 600
    assert dispatcher.max_images == 10


@pytest.mark.asyncio
async def test_send_text_delivers_chunks_in_order() -> None:
    sender = _Sender()
    dispatcher = OutboundDispatcher(sender, text_limit=10, chunk_delay=0)

    result = await dispatcher.send_text("u1", "0123456789abcdefghij12345")

    assert result.ok
    assert result.data.startswith("wemp-")
    assert sender.texts == ["0123456789", "abcdefghij", "12345"]


@pytest.mark.asyncio
async def test_send_text_stops_at_first_failure() -> None:
    sender = _Sender(fail_text_on=2)
    dispatcher = OutboundDispatcher(sender, text_limit=10, chunk_delay=0)

    result = await dispatcher.send_text("u1", "x" * 30)

    assert not result.ok
    assert isinstance(result.error, DeliveryError)
    assert result.error.errcode == 45047
    assert len(sender.texts) == 2


@pytest.mark.asyncio
async def test_send_text_skips_blank_text() -> None:
    sender = _Sender()

    result = await OutboundDispatcher(sender, chunk_delay=0).send_text("u1", "   ")

    assert result.ok
    assert sender.texts == []


@pytest.mark.asyncio
async def test_send_images_is_capped_and_best_effort() -> None:
    sender = _Sender(bad_images={"u2"})
    urls = ["u1", "u2", "boom"] + [f"img{i}" for i in range(10)]

    sent = await OutboundDispatcher(sender, chunk_delay=0).send_images("u1", urls)

    assert sender.images == urls[:10]
    assert sent == 8
