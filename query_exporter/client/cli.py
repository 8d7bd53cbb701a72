import argparse
import json
import sys
from dataclasses import asdict

import requests

from query_exporter.config.logger_config import configure_logging
from .core import DEFAULT_BASE_URL, ExportRequestFailed, request_export


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="python -m query_exporter.client.cli",
        description="Export the result of a SQL query to CSV on the exporter host.",
    )
    parser.add_argument("query", nargs="+", help="SQL text")
    parser.add_argument("--output", "-o", help="output filename (default: timestamped)")
    parser.add_argument("--url", default=DEFAULT_BASE_URL, help="exporter base URL")
    parser.add_argument("--timeout", type=float, default=60.0)
    args = parser.parse_args(argv)

    configure_logging()
    try:
        result = request_export(
            " ".join(args.query), args.output, base_url=args.url, timeout=args.timeout
        )
    except ExportRequestFailed as exc:
        print(exc.body.strip(), file=sys.stderr)
        return 1
    except requests.RequestException as exc:
        print(f"could not reach exporter: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(asdict(result), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
