from pathlib import Path

import numpy as np

from skyscore.audio import audio_digest, ensure_audio_contract, to_pcm16, write_wav
from skyscore.hashing import sha256_hex


def test_ensure_audio_contract_scales_peaks() -> None:
    audio = np.array([2.0, -1.0], dtype=np.float32)
    out = ensure_audio_contract(audio)
    assert out.dtype == np.float32
    assert np.allclose(out, [1.0, -0.5])


def test_ensure_audio_contract_skip_peak() -> None:
    audio = np.array([2.0, -2.0], dtype=np.float32)
    out = ensure_audio_contract(audio, check_peak=False)
    assert np.allclose(out, audio)


def test_pcm16_is_little_endian_int16() -> None:
    assert to_pcm16([1.0, -1.0, 0.0]) == b"\xff\x7f\x01\x80\x00\x00"


def test_pcm16_length_matches_samples() -> None:
    audio = np.zeros(123, dtype=np.float32)
    assert len(to_pcm16(audio)) == 246


def test_audio_digest_hashes_pcm() -> None:
    audio = np.linspace(-0.5, 0.5, 64, dtype=np.float32)
    assert audio_digest(audio) == sha256_hex(to_pcm16(audio))


def test_write_wav_accepts_sequence(tmp_path: Path) -> None:
    target = tmp_path / "seq.wav"
    samples = [0.0, 0.1, -0.1, 0.0]

    write_wav(target, samples, sample_rate=22_050)

    assert target.exists()
    assert target.stat().st_size > 0
