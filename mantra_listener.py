"""Sliding-window recognition of a reference mantra in live MFCC frames."""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Optional

import numpy as np

from mantra_dsp import DEFAULT_CONFIG, MfccConfig, extract_mfcc
from mantra_dtw import dtw_similarity

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_FRAMES = 50
DEFAULT_SIMILARITY_THRESHOLD = 0.7


class MantraListener:
    """Counts occurrences of a reference mantra in a stream of audio frames.

    Each frame is reduced to an MFCC vector and pushed into a window of the
    most recent ``window_frames`` vectors. Once the window is full it is
    compared to the reference with DTW; a similarity above ``threshold``
    counts as a match and empties the window so the next match needs fresh
    audio.
    """

    def __init__(
        self,
        reference: np.ndarray,
        window_frames: int = DEFAULT_WINDOW_FRAMES,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        match_limit: int = 0,
        config: Optional[MfccConfig] = None,
    ):
        reference = np.asarray(reference, dtype=float)
        if reference.ndim != 2 or reference.shape[0] == 0:
            raise ValueError("reference must be a non-empty (frames, coefficients) matrix")
        if window_frames <= 0:
            raise ValueError(f"window_frames must be positive, got {window_frames}")
        self.config = config or DEFAULT_CONFIG
        if reference.shape[1] != self.config.num_ceps:
            raise ValueError(
                f"reference has {reference.shape[1]} coefficients, expected {self.config.num_ceps}"
            )
        self.reference = reference
        self.window_frames = window_frames
        self.threshold = threshold
        self.match_limit = match_limit
        self.match_count = 0
        self.last_similarity: Optional[float] = None
        self._window: Deque[np.ndarray] = deque(maxlen=window_frames)

    @property
    def limit_reached(self) -> bool:
        return self.match_limit > 0 and self.match_count >= self.match_limit

    def reset(self) -> None:
        """Forget buffered frames and the match count."""
        self._window.clear()
        self.match_count = 0
        self.last_similarity = None

    def process_frame(self, frame: np.ndarray) -> Optional[float]:
        """Feed one audio frame; return the window similarity once the window is full."""
        if len(frame) <= 1:
            return None
        self._window.append(extract_mfcc(frame, self.config))
        if len(self._window) < self.window_frames:
            return None

        similarity = dtw_similarity(np.stack(self._window), self.reference)
        self.last_similarity = similarity
        if similarity > self.threshold:
            self.match_count += 1
            self._window.clear()
            logger.info("Mantra matched: count=%d similarity=%.3f", self.match_count, similarity)
        return similarity
