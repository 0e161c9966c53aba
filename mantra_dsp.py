"""Frame-level MFCC extraction: FFT, mel filterbank and cepstral transform."""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

# Defaults matching the recorder: 48 kHz mono, 2048-sample frames,
# 40 mel filters reduced to 13 cepstral coefficients.
DEFAULT_FS = 48000
DEFAULT_FRAME_SIZE = 2048
DEFAULT_MEL_FILTERS = 40
DEFAULT_NUM_CEPS = 13
DEFAULT_PRE_EMPHASIS = 0.95

# Energy substituted for silent filters before taking the log.
LOG_ENERGY_FLOOR = 1e-10


@dataclass(frozen=True)
class MfccConfig:
    """Parameters of the per-frame MFCC pipeline."""

    sample_rate: int = DEFAULT_FS
    num_filters: int = DEFAULT_MEL_FILTERS
    num_ceps: int = DEFAULT_NUM_CEPS
    pre_emphasis: float = DEFAULT_PRE_EMPHASIS

    def __post_init__(self):
        for name in ("sample_rate", "num_filters", "num_ceps"):
            value = getattr(self, name)
            if int(value) != value or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")


DEFAULT_CONFIG = MfccConfig()


def _is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def _next_power_of_two(n: int) -> int:
    return 1 << (n - 1).bit_length()


def _bit_reversal_permutation(n: int) -> np.ndarray:
    """Index permutation reversing the log2(n) low bits of 0..n-1."""
    bits = n.bit_length() - 1
    indices = np.arange(n)
    reversed_indices = np.zeros(n, dtype=int)
    for b in range(bits):
        reversed_indices |= ((indices >> b) & 1) << (bits - 1 - b)
    return reversed_indices


def fft(values: np.ndarray, inverse: bool = False) -> np.ndarray:
    """Iterative radix-2 Cooley-Tukey transform, computed in place.

    ``values`` must be a contiguous complex array whose length is a power of
    two; no padding is done here. The forward transform uses a positive
    exponent, so magnitudes agree with the conventional DFT. The inverse
    divides by ``n``. The same array is returned for convenience.
    """
    if not np.iscomplexobj(values) or values.ndim != 1 or not values.flags.c_contiguous:
        raise ValueError("fft expects a contiguous 1-D complex array")
    n = values.shape[0]
    if not _is_power_of_two(n):
        raise ValueError(f"fft length must be a power of two, got {n}")

    values[:] = values[_bit_reversal_permutation(n)]

    sign = -1.0 if inverse else 1.0
    size = 2
    while size <= n:
        half = size // 2
        twiddles = np.exp(sign * 2j * np.pi * np.arange(half) / size)
        blocks = values.reshape(-1, size)
        even = blocks[:, :half].copy()
        odd = blocks[:, half:] * twiddles
        blocks[:, :half] = even + odd
        blocks[:, half:] = even - odd
        size *= 2

    if inverse:
        values /= n
    return values


def power_spectrum(frame: np.ndarray) -> np.ndarray:
    """Return |X_k|^2 / n for k = 0..n/2 of the zero-padded frame."""
    samples = np.asarray(frame, dtype=float)
    if samples.ndim != 1 or samples.size == 0:
        raise ValueError("power_spectrum expects a non-empty 1-D frame")
    fft_size = _next_power_of_two(samples.size)
    spectrum = np.zeros(fft_size, dtype=complex)
    spectrum[: samples.size] = samples
    fft(spectrum)
    return np.abs(spectrum[: fft_size // 2 + 1]) ** 2 / fft_size


def hz_to_mel(f: float) -> float:
    return 2595 * np.log10(1 + f / 700)


def mel_to_hz(mel: float) -> float:
    return 700 * (10 ** (mel / 2595) - 1)


def mel_bin_edges(n_filters: int, n_fft: int, fs: int) -> np.ndarray:
    """FFT bin indices of the n_filters+2 mel-spaced filter corners."""
    mel_points = np.linspace(0.0, hz_to_mel(fs / 2), n_filters + 2)
    hz_points = mel_to_hz(mel_points)
    return np.floor((n_fft + 1) * hz_points / fs).astype(int)


@lru_cache(maxsize=None)
def build_mel_filterbank(n_filters: int, n_fft: int, fs: int) -> np.ndarray:
    """Create a read-only triangular Mel filter bank matrix.

    Shape is ``(n_filters, n_fft // 2 + 1)``. Built once per argument tuple;
    callers share the cached array.
    """
    if n_filters <= 0 or fs <= 0:
        raise ValueError("n_filters and fs must be positive")
    if not _is_power_of_two(n_fft) or n_fft < 2:
        raise ValueError(f"n_fft must be a power of two >= 2, got {n_fft}")

    bin_freqs = mel_bin_edges(n_filters, n_fft, fs)
    filterbank = np.zeros((n_filters, n_fft // 2 + 1))
    for i in range(1, n_filters + 1):
        left = bin_freqs[i - 1]
        center = bin_freqs[i]
        right = bin_freqs[i + 1]
        # An empty range means a zero-width ramp; nothing is divided by zero.
        for k in range(left, center):
            filterbank[i - 1, k] = (k - left) / (center - left)
        for k in range(center, right):
            filterbank[i - 1, k] = (right - k) / (right - center)

    empty = int(np.sum(~filterbank.any(axis=1)))
    if empty:
        logger.warning(
            "%d of %d mel filters have no support (n_fft=%d, fs=%d)",
            empty,
            n_filters,
            n_fft,
            fs,
        )
    logger.debug("Built mel filterbank: filters=%d n_fft=%d fs=%d", n_filters, n_fft, fs)
    filterbank.setflags(write=False)
    return filterbank


@lru_cache(maxsize=None)
def _dct_basis(num_ceps: int, num_filters: int) -> np.ndarray:
    k = np.arange(num_ceps)[:, None]
    m = np.arange(num_filters)[None, :]
    basis = np.cos(np.pi * k * (m + 0.5) / num_filters)
    basis.setflags(write=False)
    return basis


def apply_pre_emphasis(frame: np.ndarray, coeff: float = DEFAULT_PRE_EMPHASIS) -> np.ndarray:
    """Apply x[n] -= a*x[n-1] in place, using the unmodified x[n-1]."""
    # The right-hand side is evaluated before the in-place subtraction,
    # which is the same as walking from the last sample down to index 1.
    frame[1:] -= coeff * frame[:-1]
    return frame


def apply_hamming_window(frame: np.ndarray) -> np.ndarray:
    """Multiply the frame in place by a symmetric Hamming window."""
    n = np.arange(frame.size)
    frame *= 0.54 - 0.46 * np.cos(2 * np.pi * n / (frame.size - 1))
    return frame


def log_mel_energies(power: np.ndarray, filterbank: np.ndarray) -> np.ndarray:
    """Log filterbank energies, floored so silent filters stay finite."""
    energies = filterbank @ power
    log_energies = np.full(energies.shape, np.log(LOG_ENERGY_FLOOR))
    positive = energies > 0
    log_energies[positive] = np.log(energies[positive])
    return log_energies


def dct_cepstrum(log_energies: np.ndarray, num_ceps: int = DEFAULT_NUM_CEPS) -> np.ndarray:
    """Unnormalized DCT-II projection of the log energies onto num_ceps cosines."""
    return _dct_basis(num_ceps, log_energies.size) @ log_energies


def extract_mfcc(frame: np.ndarray, config: Optional[MfccConfig] = None) -> np.ndarray:
    """Compute the MFCC vector of one audio frame.

    The caller's frame is copied; pre-emphasis and windowing act on the copy.
    """
    config = config or DEFAULT_CONFIG
    samples = np.array(frame, dtype=float)
    if samples.ndim != 1:
        raise ValueError(f"Frame must be 1-D, got shape {samples.shape}")
    if samples.size < 2:
        raise ValueError(f"Frame must contain at least 2 samples, got {samples.size}")

    apply_pre_emphasis(samples, config.pre_emphasis)
    apply_hamming_window(samples)
    power = power_spectrum(samples)
    n_fft = 2 * (power.size - 1)
    filterbank = build_mel_filterbank(config.num_filters, n_fft, config.sample_rate)
    return dct_cepstrum(log_mel_energies(power, filterbank), config.num_ceps)


def frame_signal(signal_samples: np.ndarray, frame_size: int = DEFAULT_FRAME_SIZE) -> np.ndarray:
    """Split a signal into consecutive full frames; a trailing partial frame is dropped."""
    if frame_size < 2:
        raise ValueError(f"frame_size must be at least 2, got {frame_size}")
    x = np.asarray(signal_samples, dtype=float).ravel()
    num_frames = x.size // frame_size
    return x[: num_frames * frame_size].reshape(num_frames, frame_size)


def extract_mfcc_sequence(
    signal_samples: np.ndarray,
    frame_size: int = DEFAULT_FRAME_SIZE,
    config: Optional[MfccConfig] = None,
) -> np.ndarray:
    """Compute the MFCC matrix (num_frames, num_ceps) of a recording."""
    config = config or DEFAULT_CONFIG
    frames = frame_signal(signal_samples, frame_size)
    if frames.shape[0] == 0:
        return np.empty((0, config.num_ceps))
    return np.stack([extract_mfcc(frame, config) for frame in frames])
