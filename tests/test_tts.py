"""Tests for TTS module and the edge-tts speech port."""

import os
from unittest.mock import patch, MagicMock

import pytest

from storycast.constants import FALLBACK_VOICE, TTS_RETRY_COUNT
from storycast.errors import VoiceUnavailable
from storycast.models import EventKind, State, VoiceConfig
from storycast.player import PlaybackController
from storycast.tts import EdgeSpeechPort, generate_single, synthesize, utterance_filename
from storycast.voices import fallback_config, narrator_config


def _make_mock_communicate(calls=None, fail_voices=()):
    """Mock edge_tts.Communicate that writes a few fake MP3 bytes."""
    def factory(text, voice, **kwargs):
        if calls is not None:
            calls.append((text, voice, kwargs))
        mock = MagicMock()
        async def save(path):
            if voice in fail_voices:
                raise Exception(f"No audio was received for {voice}")
            with open(path, "wb") as f:
                f.write(b"ID3fake-mp3")
        mock.save = save
        return mock
    return factory


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("storycast.tts.time.sleep") as mock_sleep:
        yield mock_sleep


@patch("storycast.tts.edge_tts.Communicate")
def test_generate_single(mock_comm, tmp_path):
    calls = []
    mock_comm.side_effect = _make_mock_communicate(calls)
    output = tmp_path / "clip.mp3"
    generate_single("Hello world", "en-US-GuyNeural", str(output), rate="+10%")
    assert output.stat().st_size > 0
    assert calls == [("Hello world", "en-US-GuyNeural", {"rate": "+10%", "pitch": "+0Hz", "volume": "+0%"})]


@patch("storycast.tts.edge_tts.Communicate")
def test_generate_single_retry(mock_comm, tmp_path, no_sleep):
    call_count = 0

    def fail_then_succeed(text, voice, **kwargs):
        nonlocal call_count
        call_count += 1
        if call_count == 1:
            mock = MagicMock()
            async def fail_save(path):
                raise Exception("Network error")
            mock.save = fail_save
            return mock
        return _make_mock_communicate()(text, voice, **kwargs)

    mock_comm.side_effect = fail_then_succeed
    output = tmp_path / "clip.mp3"
    generate_single("Hello", "en-US-GuyNeural", str(output))
    assert output.exists()
    assert call_count == 2
    no_sleep.assert_called_once_with(1.0)


@patch("storycast.tts.edge_tts.Communicate")
def test_generate_single_retry_exhausted(mock_comm, tmp_path):
    mock_comm.side_effect = _make_mock_communicate(fail_voices={"xx-XX-Nobody"})
    with pytest.raises(Exception, match="No audio"):
        generate_single("Hello", "xx-XX-Nobody", str(tmp_path / "clip.mp3"))
    assert mock_comm.call_count == TTS_RETRY_COUNT


@patch("storycast.tts.edge_tts.Communicate")
def test_generate_single_zero_byte_is_failure(mock_comm, tmp_path):
    attempts = [0]

    def write_empty_first(text, voice, **kwargs):
        mock = MagicMock()
        async def save(path):
            attempts[0] += 1
            with open(path, "wb") as f:
                f.write(b"" if attempts[0] == 1 else b"ID3")
        mock.save = save
        return mock

    mock_comm.side_effect = write_empty_first
    output = tmp_path / "clip.mp3"
    generate_single("Hello", "en-US-GuyNeural", str(output))
    assert attempts[0] == 2
    assert output.stat().st_size > 0


@patch("storycast.tts.edge_tts.Communicate")
def test_synthesize_passes_prosody(mock_comm, tmp_path, pool):
    calls = []
    mock_comm.side_effect = _make_mock_communicate(calls)
    config = VoiceConfig(profile=pool.get("en-US-AriaNeural"), rate=1.2, pitch=1.1, volume=0.5)
    synthesize("Hi.", config, str(tmp_path / "clip.mp3"))
    assert calls[0][1] == "en-US-AriaNeural"
    assert calls[0][2] == {"rate": "+20%", "pitch": "+10Hz", "volume": "-50%"}


@patch("storycast.tts.edge_tts.Communicate")
def test_synthesize_raises_voice_unavailable(mock_comm, tmp_path, pool):
    mock_comm.side_effect = _make_mock_communicate(fail_voices={"en-US-AriaNeural"})
    config = VoiceConfig(profile=pool.get("en-US-AriaNeural"))
    with pytest.raises(VoiceUnavailable) as exc:
        synthesize("Hi.", config, str(tmp_path / "clip.mp3"))
    assert exc.value.voice_id == "en-US-AriaNeural"
    assert "No audio" in exc.value.reason


def test_utterance_filename_is_content_addressed(pool):
    aria = VoiceConfig(profile=pool.get("en-US-AriaNeural"))
    sara = VoiceConfig(profile=pool.get("en-US-SaraNeural"))
    assert utterance_filename("Hi.", aria) == utterance_filename("Hi.", aria)
    assert utterance_filename("Hi.", aria) != utterance_filename("Hi.", sara)
    assert utterance_filename("Hi.", aria) != utterance_filename("Hello.", aria)
    assert utterance_filename("Hi.", aria).startswith("en-US-AriaNeural_")


# --- EdgeSpeechPort ---

def _controller(port, pool):
    return PlaybackController(port, narrator_config(pool), fallback_config(pool))


@patch("storycast.tts.edge_tts.Communicate")
def test_port_renders_all_segments_in_order(mock_comm, tmp_path, pool, sample_segments, voice_map):
    mock_comm.side_effect = _make_mock_communicate()
    port = EdgeSpeechPort(str(tmp_path / "segments"), pool=pool)
    controller = _controller(port, pool)
    controller.play(sample_segments, voice_map)
    rendered = port.drain()
    assert [u.index for u in rendered] == [0, 1, 2]
    assert [u.text for u in rendered] == [s.text for s in sample_segments]
    assert all(os.path.exists(u.path) for u in rendered)
    assert controller.state.state is State.STOPPED


@patch("storycast.tts.edge_tts.Communicate")
def test_port_reuses_existing_clips(mock_comm, tmp_path, pool, sample_segments, voice_map):
    mock_comm.side_effect = _make_mock_communicate()
    out = str(tmp_path / "segments")
    first = EdgeSpeechPort(out, pool=pool)
    _controller(first, pool).play(sample_segments, voice_map)
    first.drain()
    assert mock_comm.call_count == 3

    second = EdgeSpeechPort(out, pool=pool)
    _controller(second, pool).play(sample_segments, voice_map)
    assert len(second.drain()) == 3
    assert mock_comm.call_count == 3


@patch("storycast.tts.edge_tts.Communicate")
def test_port_falls_back_when_voice_fails(mock_comm, tmp_path, pool, sample_segments, voice_map):
    mock_comm.side_effect = _make_mock_communicate(fail_voices={"en-US-AriaNeural"})
    port = EdgeSpeechPort(str(tmp_path / "segments"), pool=pool)
    controller = _controller(port, pool)
    events = []
    controller.subscribe(events.append)
    controller.play(sample_segments, voice_map)
    rendered = port.drain()
    assert rendered[0].index == 0
    assert rendered[0].config.voice_id == FALLBACK_VOICE
    assert EventKind.VOICE_SUBSTITUTED in [e.kind for e in events]
    assert len(rendered) == 3


@patch("storycast.tts.edge_tts.Communicate")
def test_port_skips_segment_when_fallback_fails(mock_comm, tmp_path, pool, sample_segments, voice_map):
    mock_comm.side_effect = _make_mock_communicate(fail_voices={"en-US-AriaNeural", FALLBACK_VOICE})
    port = EdgeSpeechPort(str(tmp_path / "segments"), pool=pool)
    controller = _controller(port, pool)
    controller.play(sample_segments, voice_map)
    rendered = port.drain()
    assert [u.index for u in rendered] == [1, 2]


def test_port_cancel_drops_pending(tmp_path, pool):
    port = EdgeSpeechPort(str(tmp_path), pool=pool)
    config = narrator_config(pool)
    port.speak("one", config, 1)
    port.speak("two", config, 2)
    port.cancel(1)
    assert [u.token for u in port.pending] == [2]
    assert port.list_voices() == list(pool)
