from __future__ import annotations

import argparse
import json
import logging

from dvtimeline.config import load_config
from dvtimeline.datamodel import DataModel
from dvtimeline.models import ModelStatus


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dvtimeline")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command")

    query = sub.add_parser("query", help="Resolve timestamps to the nearest recorded frame.")
    query.add_argument("--input", required=True, help="Path to the analysis report (XML).")
    query.add_argument(
        "--at",
        required=True,
        type=int,
        action="append",
        help="Timestamp to resolve. May be given more than once.",
    )
    query.add_argument("--channel", type=int, default=0, help="0 = odd field, 1 = even field.")
    query.add_argument("--config", required=False, default=None, help="YAML config path.")

    summary = sub.add_parser("summary", help="Print frame count and time span of a report.")
    summary.add_argument("--input", required=True, help="Path to the analysis report (XML).")
    summary.add_argument("--config", required=False, default=None, help="YAML config path.")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command not in {"query", "summary"}:
        parser.print_help()
        return 0
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
    except Exception as exc:
        print(json.dumps({"error": "CONFIG_LOAD_ERROR", "message": str(exc)}))
        return 30

    with DataModel(config) as model:
        model.populate(args.input)
        model.wait_until_settled()
        if model.status != ModelStatus.READY:
            print(json.dumps({"error": "REPORT_LOAD_ERROR", "message": model.last_error}))
            return 20
        if args.command == "summary":
            index = model.index
            first_ts, last_ts = index.time_span
            print(
                json.dumps(
                    {
                        "frames": len(index),
                        "first_frame": index.first.frame_number,
                        "last_frame": index.last.frame_number,
                        "first_timestamp": first_ts,
                        "last_timestamp": last_ts,
                        "duplicates_dropped": index.duplicates_dropped,
                    }
                )
            )
            return 0
        try:
            infos = model.get_video_infos(args.at, args.channel)
            for timestamp, info in zip(args.at, infos):
                print(
                    json.dumps(
                        {
                            "query": timestamp,
                            "frame": info.frame_number,
                            "value": info.odd_value if args.channel == 0 else info.even_value,
                            "odd": info.odd_value,
                            "even": info.even_value,
                        }
                    )
                )
        except ValueError as exc:
            print(json.dumps({"error": "INVALID_CHANNEL", "message": str(exc)}))
            return 30
    return 0
