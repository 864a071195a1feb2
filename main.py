#!/usr/bin/env python3
"""Wheelie Meter -- offline ride analyser.

Replays a recorded ride (CSV of `timestamp,beta`) through the same
calibration and detection used live, and prints every wheelie found.

Usage:
    python3 main.py ride.csv                       # Default thresholds
    python3 main.py ride.csv --offset 3.5          # Apply a calibration offset
    python3 main.py ride.csv --re-arm-delay 1      # Suppress bounce re-triggers
    python3 main.py ride.csv --json                # Machine-readable output
    python3 main.py ride.csv --save --nickname ann # Upload to the results table
    python3 main.py --log-level DEBUG ride.csv     # Verbose logging
"""

__version__ = "1.2.0"

import argparse
import json
import logging
import platform
import sys

import config as app_config
from sources.replay_source import read_samples
from stores.results import ResultsClient, ResultsSink
from wheelie.calibrator import Calibrator
from wheelie.detector import DetectorConfig
from wheelie.errors import WheelieError
from wheelie.session import MeasurementSession


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Wheelie Meter -- detect wheelies in a recorded ride",
    )
    parser.add_argument("recording", help="CSV file with timestamp,beta rows")
    parser.add_argument(
        "--config", default=None,
        help="Path to wheelie.yaml (default: built-in defaults)",
    )
    parser.add_argument("--offset", type=float, default=0.0,
                        help="Calibration offset in degrees (default: 0)")
    parser.add_argument("--threshold", type=float, default=None,
                        help="Wheelie threshold in degrees")
    parser.add_argument("--danger", type=float, default=None,
                        help="Danger threshold in degrees")
    parser.add_argument("--re-arm-delay", type=float, default=None,
                        help="Seconds to ignore new wheelies after one ends")
    parser.add_argument("--json", action="store_true",
                        help="Print records as JSON lines")
    parser.add_argument("--save", action="store_true",
                        help="Upload the records to the results table")
    parser.add_argument("--nickname", default=None,
                        help="Rider nickname (3-20 characters)")
    parser.add_argument(
        "--log-level", default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set the logging verbosity (default: WARNING)",
    )
    parser.add_argument(
        "--version", action="version",
        version=f"Wheelie Meter {__version__}",
    )
    return parser.parse_args(argv)


def setup_logging(level_name: str) -> None:
    """Configure root logger with a consistent format."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-7s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )


def analyse(samples, detector_config, offset=0.0, nickname="offline", sink=None):
    """Run samples through a fresh session. Returns the session."""
    session = MeasurementSession(detector_config, Calibrator(offset), sink=sink)
    session.start(nickname)
    for ts, beta in samples:
        session.on_sample(beta, ts)
    session.stop()
    return session


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    try:
        cfg = app_config.load_config(args.config)
        detector_opts = dict(cfg["detector"])
        for opt, value in (
            ("wheelie_threshold", args.threshold),
            ("danger_threshold", args.danger),
            ("re_arm_delay", args.re_arm_delay),
        ):
            if value is not None:
                detector_opts[opt] = value
        detector_config = DetectorConfig.from_dict(detector_opts)

        sink = None
        if args.save:
            client = ResultsClient.from_config(cfg["results"])
            sink = ResultsSink(client, device=f"cli/{platform.platform()}")

        samples = read_samples(args.recording)
        session = analyse(
            samples, detector_config, offset=args.offset,
            nickname=args.nickname or "offline", sink=sink,
        )
    except (WheelieError, OSError) as exc:
        logger.error("%s", exc)
        return 2

    records = list(reversed(session.history.records()))
    for record in records:
        if args.json:
            print(json.dumps(record.to_dict()))
        else:
            print(
                f"{record.ended_at:10.2f}s  {record.duration:6.2f}s  "
                f"max {record.max_angle:5.1f}°  avg {record.avg_angle:5.1f}°"
            )

    if not args.json:
        print(f"{len(records)} wheelie(s) in {len(samples)} samples")
        if session.detector.invalid_samples:
            print(f"{session.detector.invalid_samples} invalid sample(s) ignored")

    if args.save and records:
        try:
            count = session.save()
        except WheelieError as exc:
            logger.error("Save failed: %s", exc)
            return 1
        if not args.json:
            print(f"Saved {count} result(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
