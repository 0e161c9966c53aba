"""Mantra recordings on disk and the MFCC reference library built from them."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
from scipy.io import wavfile

from mantra_dsp import (
    DEFAULT_FRAME_SIZE,
    DEFAULT_FS,
    MfccConfig,
    DEFAULT_CONFIG,
    extract_mfcc_sequence,
)
from mantra_dtw import dtw_similarity

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# 16-bit PCM full scale used when converting to and from float samples.
PCM16_SCALE = 32767.0

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


class MantraStoreError(RuntimeError):
    """Raised when a mantra recording cannot be read, written or found."""


def _read_pcm16_mono(path: PathLike, fs: int) -> np.ndarray:
    try:
        rate, data = wavfile.read(str(path))
    except (OSError, ValueError) as exc:
        raise MantraStoreError(f"Cannot read WAV file {path}: {exc}") from exc
    if data.dtype != np.int16:
        raise MantraStoreError(f"{path}: expected 16-bit PCM, got {data.dtype}")
    if data.ndim != 1:
        raise MantraStoreError(f"{path}: expected mono audio, got {data.shape[1]} channels")
    if rate != fs:
        raise MantraStoreError(f"{path}: sample rate {rate} Hz does not match {fs} Hz")
    return data


def is_valid_wav(path: PathLike, fs: int = DEFAULT_FS) -> bool:
    """Return True for a readable 16-bit PCM mono WAV recorded at fs."""
    try:
        _read_pcm16_mono(path, fs)
    except MantraStoreError:
        return False
    return True


def load_wav(path: PathLike, fs: int = DEFAULT_FS) -> np.ndarray:
    """Load a mantra recording as float32 samples in [-1, 1]."""
    data = _read_pcm16_mono(path, fs)
    return (data / PCM16_SCALE).astype(np.float32)


def save_wav(path: PathLike, samples: np.ndarray, fs: int = DEFAULT_FS) -> None:
    """Write float samples as a 16-bit PCM mono WAV file."""
    x = np.clip(np.asarray(samples, dtype=float).ravel(), -1.0, 1.0)
    wavfile.write(str(path), fs, np.round(x * PCM16_SCALE).astype(np.int16))


def sanitize_mantra_name(name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9_-]`` with an underscore.

    The result is always a single file name inside the store, so names such
    as ``../om`` cannot reach outside the mantra directory.
    """
    if not name.strip():
        raise MantraStoreError("Mantra name must not be blank")
    return _UNSAFE_NAME_CHARS.sub("_", name)


def mantra_path(directory: PathLike, name: str) -> Path:
    return Path(directory) / f"{sanitize_mantra_name(name)}.wav"


def unique_mantra_name(directory: PathLike, name: str) -> str:
    """Sanitized name with ``_1``, ``_2``... appended until no recording uses it."""
    base = sanitize_mantra_name(name)
    candidate = base
    counter = 1
    while mantra_path(directory, candidate).exists():
        candidate = f"{base}_{counter}"
        counter += 1
    return candidate


def list_mantras(directory: PathLike, fs: int = DEFAULT_FS) -> List[str]:
    """Sorted names of valid mantra recordings in a directory."""
    folder = Path(directory)
    if not folder.is_dir():
        return []
    names = []
    for path in folder.glob("*.wav"):
        if _UNSAFE_NAME_CHARS.search(path.stem):
            logger.warning("Skipping mantra recording with unsupported name: %s", path.name)
        elif is_valid_wav(path, fs):
            names.append(path.stem)
        else:
            logger.warning("Skipping invalid mantra recording: %s", path.name)
    return sorted(names)


def delete_mantra(directory: PathLike, name: str) -> None:
    """Remove a saved mantra recording."""
    path = mantra_path(directory, name)
    if not path.exists():
        raise MantraStoreError(f"Mantra '{name}' not found in {directory}")
    path.unlink()
    logger.info("Deleted mantra '%s'", path.stem)


def load_reference_features(
    directory: PathLike,
    name: str,
    frame_size: int = DEFAULT_FRAME_SIZE,
    config: Optional[MfccConfig] = None,
) -> np.ndarray:
    """MFCC sequence of one saved mantra (full frames only)."""
    config = config or DEFAULT_CONFIG
    path = mantra_path(directory, name)
    if not path.exists():
        raise MantraStoreError(f"Mantra '{name}' not found in {directory}")
    samples = load_wav(path, config.sample_rate)
    return extract_mfcc_sequence(samples, frame_size, config)


def load_reference_library(
    directory: PathLike,
    frame_size: int = DEFAULT_FRAME_SIZE,
    config: Optional[MfccConfig] = None,
) -> Dict[str, np.ndarray]:
    """Load MFCC sequences for every valid mantra in a directory."""
    config = config or DEFAULT_CONFIG
    library: Dict[str, np.ndarray] = {}
    for name in list_mantras(directory, config.sample_rate):
        features = load_reference_features(directory, name, frame_size, config)
        if features.shape[0] == 0:
            logger.warning("No MFCC frames extracted for '%s'; recording shorter than one frame", name)
            continue
        library[name] = features
        logger.debug("Loaded %d MFCC frames for '%s'", features.shape[0], name)
    return library


def find_best_match(
    library: Dict[str, np.ndarray],
    query_features: np.ndarray,
) -> Tuple[Optional[str], Optional[float]]:
    """Find the saved mantra most similar to the query under DTW."""
    best_name: Optional[str] = None
    best_similarity: Optional[float] = None
    for name, features in library.items():
        if features.size == 0:
            continue
        if features.shape[1] != query_features.shape[1]:
            logger.warning(
                "Skipping '%s': %d coefficients, query has %d",
                name,
                features.shape[1],
                query_features.shape[1],
            )
            continue
        similarity = dtw_similarity(query_features, features)
        if best_similarity is None or similarity > best_similarity:
            best_similarity = similarity
            best_name = name
    return best_name, best_similarity
