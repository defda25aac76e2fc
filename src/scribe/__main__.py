#!/usr/bin/env python3
"""
Scribe command line entry point.

Usage:
    scribe [options] [run]           Record until Ctrl+C, then transcribe
    scribe record [options]          Record and save a WAV file only
    scribe transcribe INPUT          Transcribe an existing WAV file
    scribe devices                   List capture devices

Status output goes to stderr; the transcript goes to stdout unless -o is set.
"""

from __future__ import annotations

import argparse
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import numpy as np

from scribe import __version__
from scribe.common import console
from scribe.common.config import ScribeConfig
from scribe.common.logging_config import setup_logging
from scribe.core.backends import (
    PyAudioMicrophoneBackend,
    SoundcardLoopbackBackend,
    default_backend,
)
from scribe.core.capture import LiveSourceCapture
from scribe.core.errors import NoAudioCapturedError, PermissionDeniedError, ScribeError
from scribe.core.types import TARGET_SAMPLE_RATE
from scribe.core.wav_codec import read_wav, write_wav
from scribe.transcriber import WhisperTranscriber

COMMANDS = ("run", "record", "transcribe", "devices")
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="scribe",
        description="Record microphone and system audio, then transcribe it locally.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"scribe {__version__}")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output to stderr",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file",
    )

    # Lets -v also follow the subcommand without overwriting the global value
    verbose_parent = argparse.ArgumentParser(add_help=False)
    verbose_parent.add_argument(
        "--verbose", "-v", action="store_true", default=argparse.SUPPRESS, help=argparse.SUPPRESS
    )

    source_parent = argparse.ArgumentParser(add_help=False)
    source_parent.add_argument(
        "--no-mic", action="store_true", help="Disable microphone input (system audio only)"
    )
    source_parent.add_argument(
        "--no-system", action="store_true", help="Disable system audio (microphone only)"
    )

    model_parent = argparse.ArgumentParser(add_help=False)
    model_parent.add_argument("-m", "--model", type=str, help="Whisper model name or path")
    model_parent.add_argument(
        "-l",
        "--language",
        type=str,
        help="Language hint (ISO 639-1, e.g. ja, en). 'auto' for detection",
    )
    model_parent.add_argument(
        "-o", "--output", type=str, default="-", help="Output file for transcript (- for stdout)"
    )

    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser(
        "run",
        parents=[verbose_parent, model_parent, source_parent],
        help="Record audio and transcribe (default action)",
    )
    run_parser.add_argument("-w", "--wav-path", type=str, help="WAV file save path")

    record_parser = subparsers.add_parser(
        "record",
        parents=[verbose_parent, source_parent],
        help="Record audio and save as WAV (no transcription)",
    )
    record_parser.add_argument("-o", "--output", type=str, help="Output WAV file path")

    transcribe_parser = subparsers.add_parser(
        "transcribe",
        parents=[verbose_parent, model_parent],
        help="Transcribe an existing WAV file",
    )
    transcribe_parser.add_argument("input", type=str, help="Input WAV file path")

    subparsers.add_parser(
        "devices",
        parents=[verbose_parent],
        help="List available microphone and system audio devices",
    )

    return parser


def _with_default_command(argv: list[str]) -> list[str]:
    """Insert "run" after the global options when no subcommand is given."""
    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg in ("-h", "--help", "--version"):
            return argv
        if arg == "--config":
            i += 2
            continue
        if arg.startswith("--config=") or arg in ("-v", "--verbose"):
            i += 1
            continue
        break
    if i < len(argv) and argv[i] in COMMANDS:
        return argv
    return argv[:i] + ["run"] + argv[i:]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    argv = list(sys.argv[1:] if argv is None else argv)
    return build_parser().parse_args(_with_default_command(argv))


# ----------------------------------------------------------------------
# Configuration
# ----------------------------------------------------------------------


def _origin(cli_value: Any, config: ScribeConfig, *keys: str) -> str:
    if cli_value:
        return "CLI"
    return config.origin(*keys)


def resolve_settings(args: argparse.Namespace, config: ScribeConfig) -> dict[str, Any]:
    """
    Resolve settings as CLI option > config file > built-in default.

    Prints each resolved value with its origin.
    """
    model = getattr(args, "model", None)
    language = getattr(args, "language", None)
    no_mic = getattr(args, "no_mic", False)
    no_system = getattr(args, "no_system", False)

    resolved = {
        "model": model or config.get("transcription", "model"),
        "language": language or config.get("transcription", "language"),
        "no_mic": no_mic or bool(config.get("recording", "no_mic", default=False)),
        "no_system": no_system or bool(config.get("recording", "no_system", default=False)),
        "recordings_dir": config.recordings_dir,
    }
    origins = {
        "model": _origin(model, config, "transcription", "model"),
        "language": _origin(language, config, "transcription", "language"),
        "no_mic": _origin(no_mic, config, "recording", "no_mic"),
        "no_system": _origin(no_system, config, "recording", "no_system"),
        "recordings_dir": config.origin("recording", "dir"),
    }

    console.status("Config:")
    for key, value in resolved.items():
        console.status(f"  {key:<15}= {value} ({origins[key]})")
    return resolved


# ----------------------------------------------------------------------
# Recording / transcription
# ----------------------------------------------------------------------


def record_audio(config: ScribeConfig, capture_mic: bool, capture_system: bool) -> np.ndarray:
    """Record until Ctrl+C and return the conditioned canonical buffer."""
    settings = config.pipeline_settings()
    backend = default_backend(
        device_index=config.get("recording", "microphone_device_index"),
        system_output_id=config.get("recording", "system_output_id"),
        chunk_size=int(config.get("recording", "chunk_size", default=1024)),
    )
    capture = LiveSourceCapture(backend)

    def _on_sigint(signum, frame):
        capture.stop()

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        console.status("Recording... Press Ctrl+C to stop.")
        capture.start(capture_mic=capture_mic, capture_system=capture_system)
    finally:
        signal.signal(signal.SIGINT, previous)

    console.status("")  # newline after ^C
    return capture.finish(settings)


def default_wav_path(recordings_dir: Path) -> Path:
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    return recordings_dir / f"{timestamp}.wav"


def save_recording(samples: np.ndarray, wav_path: str | None, recordings_dir: Path) -> Path | None:
    """Write the recording as WAV. Nothing is written for an empty capture."""
    if len(samples) == 0:
        return None
    path = Path(wav_path).expanduser() if wav_path else default_wav_path(recordings_dir)
    return write_wav(samples, path)


def transcribe_samples(
    samples: np.ndarray, settings: dict[str, Any], config: ScribeConfig
) -> str:
    transcriber = WhisperTranscriber(
        model=settings["model"],
        device=str(config.get("transcription", "device", default="auto")),
        compute_type=str(config.get("transcription", "compute_type", default="default")),
        download_root=config.models_dir,
    )
    console.status(f"Loading model: {settings['model']}")
    console.status(f"Transcribing {len(samples) / TARGET_SAMPLE_RATE:.1f}s of audio...")
    return transcriber.transcribe(samples, language=settings["language"])


def write_output(text: str, path: str | None) -> None:
    """Write text to a file, or to stdout for "-"."""
    if not path or path == "-":
        print(text)
        return
    output = Path(path).expanduser()
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text + "\n", encoding="utf-8")
    console.status(f"Transcript saved to: {output}")


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


def cmd_run(args: argparse.Namespace, config: ScribeConfig) -> int:
    settings = resolve_settings(args, config)
    config.ensure_directories()

    samples = record_audio(
        config,
        capture_mic=not settings["no_mic"],
        capture_system=not settings["no_system"],
    )
    if len(samples) == 0:
        raise NoAudioCapturedError()

    wav_file = save_recording(samples, args.wav_path, settings["recordings_dir"])
    text = transcribe_samples(samples, settings, config)
    write_output(text, args.output)

    if wav_file is not None:
        console.status(f"Recording saved to: {wav_file}")
    return 0


def cmd_record(args: argparse.Namespace, config: ScribeConfig) -> int:
    settings = resolve_settings(args, config)
    config.ensure_directories()

    samples = record_audio(
        config,
        capture_mic=not settings["no_mic"],
        capture_system=not settings["no_system"],
    )
    wav_file = save_recording(samples, args.output, settings["recordings_dir"])
    if wav_file is None:
        console.warn("No audio was captured, nothing saved")
    else:
        console.status(f"Recording saved to: {wav_file}")
    return 0


def cmd_transcribe(args: argparse.Namespace, config: ScribeConfig) -> int:
    settings = resolve_settings(args, config)
    config.ensure_directories()

    path = Path(args.input).expanduser()
    if not path.is_file():
        raise ScribeError(f"File not found: {path}")

    console.status(f"Reading {path}...")
    method = str(config.get("audio", "resample_method", default="polyphase"))
    samples = read_wav(path, method=method)

    text = transcribe_samples(samples, settings, config)
    write_output(text, args.output)
    return 0


def cmd_devices(args: argparse.Namespace, config: ScribeConfig) -> int:
    """List available microphone inputs and loopback outputs."""
    console.status("\nAvailable Microphone Input Devices:")
    console.status("-" * 50)
    inputs = PyAudioMicrophoneBackend.list_input_devices()
    if not inputs:
        console.status("No microphone input devices found (is PyAudio installed?)")
    for device in inputs:
        console.status(f"  [{device['index']}] {device['name']}")
        console.status(
            f"      Channels: {device['channels']}, Sample Rate: {device['sample_rate']}"
        )

    console.status("\nAvailable System Audio (Loopback) Devices:")
    console.status("-" * 50)
    outputs = SoundcardLoopbackBackend.list_output_devices()
    if not outputs:
        console.status("No loopback devices found (is soundcard installed?)")
    for device in outputs:
        console.status(f"  [{device['id']}] {device['name']}")
    console.status("")
    return 0


HANDLERS = {
    "run": cmd_run,
    "record": cmd_record,
    "transcribe": cmd_transcribe,
    "devices": cmd_devices,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = ScribeConfig(Path(args.config).expanduser() if args.config else None)
        setup_logging(verbose=args.verbose, log_file=config.get("logging", "file"))
        return HANDLERS[args.command](args, config)
    except PermissionDeniedError as e:
        console.error(str(e))
        for line in e.remediation:
            console.status(line)
        return 1
    except ScribeError as e:
        console.error(str(e))
        return 1
    except KeyboardInterrupt:
        console.status("\nInterrupted")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
