"""Market intelligence report entry point.

Usage:
    python run_pipeline.py [--mode daily|weekly] [--config config.yaml]
    python run_pipeline.py --serve [--host 0.0.0.0] [--port 8000]

Loads config.yaml, wires all components, then either runs one report and
prints a summary, or serves the HTTP API.
"""

import argparse
import sys
from dotenv import load_dotenv

load_dotenv()  # must precede market_intel imports so env vars are available at module load

from market_intel.core.config import load_config  # noqa: E402
from market_intel.core.logger import logger  # noqa: E402
from market_intel.models.datatypes import Mode  # noqa: E402
from market_intel.pipeline.engine import build_pipeline  # noqa: E402


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate a market intelligence report.")
    parser.add_argument("--mode", choices=[m.value for m in Mode], default=Mode.DAILY.value)
    parser.add_argument("--config", default="config.yaml")
    parser.add_argument("--serve", action="store_true", help="serve the HTTP API instead of running once")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run the pipeline. Returns 0 on success, 1 on failure."""
    args = _parse_args(sys.argv[1:] if argv is None else argv)

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as exc:
        logger.error(f"run_pipeline: failed to load config: {exc}")
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    try:
        pipeline = build_pipeline(config)
    except ValueError as exc:
        logger.error(f"run_pipeline: invalid configuration: {exc}")
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    if args.serve:
        import uvicorn

        from market_intel.api import create_app

        uvicorn.run(create_app(pipeline), host=args.host, port=args.port)
        return 0

    with pipeline.store:
        try:
            record = pipeline.run(Mode(args.mode))
        except Exception as exc:
            logger.error(f"run_pipeline: ReportPipeline raised: {exc}", exc_info=True)
            print(f"ERROR: pipeline failed, {exc}", file=sys.stderr)
            return 1

    sentiment = record.sentiment.value if record.sentiment else "n/a"
    print(f"SUCCESS: report {record.id} ({record.mode.value})")
    print(f"  HEADLINE  : {record.headline}")
    print(f"  SENTIMENT : {sentiment} ({record.probability if record.probability is not None else 'n/a'}%)")
    print(f"  SCRIPT    : {record.script}")
    print(f"  SOURCES   : {record.source_log}")
    logger.info(f"run_pipeline: completed, record {record.id}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
