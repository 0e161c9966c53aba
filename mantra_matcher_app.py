"""
Mantra Matcher Console Application
----------------------------------

Record reference mantras, then listen to the microphone and count how many
times the selected mantra is recited.  Each 2048-sample block of audio is
reduced to a 13-coefficient MFCC vector; the most recent window of vectors
is compared with the reference recording using dynamic time warping with a
cosine distance, and a similarity above the threshold counts as one
recitation.

Usage
~~~~~
::

    mantra-matcher record om --seconds 4
    mantra-matcher list
    mantra-matcher listen om --limit 108
    mantra-matcher compare take1.wav take2.wav
    mantra-matcher identify take1.wav

Recording and listening need the ``sounddevice`` package (``pip install
mantra-matcher[audio]``); ``list``, ``delete``, ``compare`` and ``identify`` work without it.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import audio_io
from audio_io import AudioIOError, MicrophoneFrameStream
from mantra_dsp import DEFAULT_FRAME_SIZE, DEFAULT_FS, MfccConfig, extract_mfcc_sequence
from mantra_dtw import dtw_similarity
from mantra_listener import DEFAULT_SIMILARITY_THRESHOLD, DEFAULT_WINDOW_FRAMES, MantraListener
from mantra_store import (
    MantraStoreError,
    delete_mantra,
    find_best_match,
    list_mantras,
    load_reference_features,
    load_reference_library,
    load_wav,
    mantra_path,
    save_wav,
    unique_mantra_name,
)

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_DIR = "mantras"
DEFAULT_RECORD_SECONDS = 5.0


def _config(args: argparse.Namespace) -> MfccConfig:
    return MfccConfig(sample_rate=args.sample_rate)


def cmd_record(args: argparse.Namespace) -> int:
    """Record a new mantra from the microphone and store it under a free name."""
    directory = Path(args.dir)
    directory.mkdir(parents=True, exist_ok=True)
    name = unique_mantra_name(directory, args.name)
    print(f"Recording '{name}' for {args.seconds:.1f} seconds...")
    samples = audio_io.record_audio(args.sample_rate, args.seconds)
    path = mantra_path(directory, name)
    save_wav(path, samples, args.sample_rate)
    logger.info("Saved %d samples to %s", samples.size, path)
    print(f"Saved mantra '{name}'.")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """Print the saved mantras."""
    names = list_mantras(args.dir, args.sample_rate)
    if not names:
        print("No saved mantras.")
    for name in names:
        print(name)
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    """Delete a saved mantra recording."""
    delete_mantra(args.dir, args.name)
    print(f"Deleted mantra '{args.name}'.")
    return 0


def _recording_features(path: str, frame_size: int, config: MfccConfig):
    features = extract_mfcc_sequence(load_wav(path, config.sample_rate), frame_size, config)
    if features.shape[0] == 0:
        raise ValueError(f"{path} is shorter than one {frame_size}-sample frame")
    return features


def cmd_compare(args: argparse.Namespace) -> int:
    """Print the DTW similarity between two recordings."""
    config = _config(args)
    first = _recording_features(args.first, args.frame_size, config)
    second = _recording_features(args.second, args.frame_size, config)
    print(f"Similarity: {dtw_similarity(first, second):.3f}")
    return 0


def cmd_identify(args: argparse.Namespace) -> int:
    """Print the saved mantra that a recording most resembles."""
    config = _config(args)
    query = _recording_features(args.recording, args.frame_size, config)
    library = load_reference_library(args.dir, args.frame_size, config)
    name, similarity = find_best_match(library, query)
    if name is None:
        raise MantraStoreError(f"No usable mantras in {args.dir}")
    print(f"Best match: {name} (similarity={similarity:.3f})")
    return 0


def cmd_listen(args: argparse.Namespace) -> int:
    """Count recitations of a saved mantra from the live microphone."""
    config = _config(args)
    reference = load_reference_features(args.dir, args.name, args.frame_size, config)
    if reference.shape[0] == 0:
        raise ValueError(f"Mantra '{args.name}' is shorter than one frame")
    listener = MantraListener(
        reference,
        window_frames=args.window,
        threshold=args.threshold,
        match_limit=args.limit,
        config=config,
    )
    stream = MicrophoneFrameStream(config.sample_rate, frame_size=args.frame_size)
    print(f"Listening for '{args.name}' (Ctrl+C to stop)...")
    try:
        with stream:
            while not listener.limit_reached:
                for frame in stream.frames(timeout=0.5):
                    count_before = listener.match_count
                    listener.process_frame(frame)
                    if listener.match_count != count_before:
                        print(f"Matches: {listener.match_count} (similarity={listener.last_similarity:.3f})")
                    if listener.limit_reached:
                        break
    except KeyboardInterrupt:
        print()
    if listener.limit_reached:
        print(f"\aMatch limit of {args.limit} reached.")
    print(f"Total matches: {listener.match_count}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mantra-matcher", description="Record mantras and count their recitations.")
    parser.add_argument("--dir", default=DEFAULT_STORAGE_DIR, help="directory holding mantra recordings")
    parser.add_argument("--sample-rate", type=int, default=DEFAULT_FS, help="sampling rate in Hz")
    parser.add_argument("--frame-size", type=int, default=DEFAULT_FRAME_SIZE, help="samples per MFCC frame")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    record = sub.add_parser("record", help="record a new mantra")
    record.add_argument("name")
    record.add_argument("--seconds", type=float, default=DEFAULT_RECORD_SECONDS)
    record.set_defaults(func=cmd_record)

    lst = sub.add_parser("list", help="list saved mantras")
    lst.set_defaults(func=cmd_list)

    delete = sub.add_parser("delete", help="delete a saved mantra")
    delete.add_argument("name")
    delete.set_defaults(func=cmd_delete)

    compare = sub.add_parser("compare", help="compare two WAV recordings")
    compare.add_argument("first")
    compare.add_argument("second")
    compare.set_defaults(func=cmd_compare)

    identify = sub.add_parser("identify", help="find the saved mantra closest to a WAV recording")
    identify.add_argument("recording")
    identify.set_defaults(func=cmd_identify)

    listen = sub.add_parser("listen", help="count recitations of a saved mantra")
    listen.add_argument("name")
    listen.add_argument("--limit", type=int, default=0, help="stop after this many matches (0 = never)")
    listen.add_argument("--threshold", type=float, default=DEFAULT_SIMILARITY_THRESHOLD)
    listen.add_argument("--window", type=int, default=DEFAULT_WINDOW_FRAMES, help="MFCC frames per comparison")
    listen.set_defaults(func=cmd_listen)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the console application."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except (AudioIOError, MantraStoreError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
