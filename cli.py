import argparse
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

from geo_core.config_manager import ConfigManager
from geo_core.errors import InvalidRequestError
from geo_core.generation.models import GenerateRequest
from geo_core.pipeline import GenerationPipeline
from geo_core.retrieval.index import PlaybookIndex
from geo_core.retrieval.ingest import GuidelineIngestor
from geo_core.utils.logger import setup_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="GEO marketing copy CLI")
    parser.add_argument("--config", default="config/settings.yaml", help="Path to settings YAML")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Generate Command
    generate_parser = subparsers.add_parser("generate", help="Generate copy for a product video")
    generate_parser.add_argument("product", help="Product name")
    generate_parser.add_argument("--srt", required=True, help="Path to the video transcript (SRT)")
    generate_parser.add_argument("--keyword", action="append", default=[], help="Keyword to integrate")
    generate_parser.add_argument("--usp", action="append", default=[], help="Brief USP")
    generate_parser.add_argument("--category", help="Product category filter for guidelines")
    generate_parser.add_argument("--launch-date", help="Ignore search results published before this date")
    generate_parser.add_argument("--no-playbook", action="store_true", help="Skip guideline retrieval")
    generate_parser.add_argument("--output", help="Write the JSON result to this file")

    # Ingest Command
    ingest_parser = subparsers.add_parser("ingest", help="Index brand guideline Markdown files")
    ingest_parser.add_argument("files", nargs="+", help="Markdown files")
    ingest_parser.add_argument("--category", default="all", help="Product category of the guidelines")

    # Grounding Command
    grounding_parser = subparsers.add_parser("grounding", help="Show live intent signals for a product")
    grounding_parser.add_argument("product", help="Product name")
    grounding_parser.add_argument("--keyword", action="append", default=[], help="Keyword to weight")
    grounding_parser.add_argument("--launch-date", help="Ignore search results published before this date")

    return parser


def main(argv=None):
    load_dotenv()
    args = build_parser().parse_args(argv)

    # Setup
    try:
        config = ConfigManager(args.config)
    except FileNotFoundError:
        config = ConfigManager.from_defaults()
    except Exception as e:
        print(f"Config Error: {e}")
        sys.exit(1)

    setup_logger(config)

    if args.command == "generate":
        srt_path = Path(args.srt)
        if not srt_path.exists():
            print(f"Error: transcript not found: {srt_path}")
            sys.exit(1)

        request = GenerateRequest(
            product_name=args.product,
            srt_content=srt_path.read_text(encoding="utf-8"),
            keywords=args.keyword,
            brief_usps=args.usp,
            product_category=args.category,
            use_playbook=not args.no_playbook,
            launch_date=args.launch_date,
        )
        pipeline = GenerationPipeline(config)
        try:
            response = pipeline.run(request)
        except InvalidRequestError as e:
            print(f"Error: {e}")
            sys.exit(1)

        if args.output:
            pipeline.save(response, args.output)
        else:
            print(response.model_dump_json(by_alias=True, exclude_none=True, indent=2))

    elif args.command == "ingest":
        ingestor = GuidelineIngestor(config, PlaybookIndex(config))
        total = 0
        for path in args.files:
            try:
                total += ingestor.ingest_file(path, product_category=args.category)
            except FileNotFoundError as e:
                print(f"Error: {e}")
                sys.exit(1)
        print(f"Indexed {total} chunks from {len(args.files)} file(s).")

    elif args.command == "grounding":
        pipeline = GenerationPipeline(config)
        signals, sections = pipeline.ground(args.product, args.keyword, args.launch_date)
        print(
            json.dumps(
                {
                    "signals": [s.model_dump(by_alias=True, exclude_none=True) for s in signals],
                    "sections": sections,
                },
                ensure_ascii=False,
                indent=2,
            )
        )


if __name__ == "__main__":
    main()
