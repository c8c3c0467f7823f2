import argparse
import json
import os
import sys
from dataclasses import asdict

from dotenv import load_dotenv
from pydantic import ValidationError

from paperpost.config.settings import get_settings
from paperpost.pipeline.factory import build_services
from paperpost.pipeline.ingest import ingest_document_from_path
from paperpost.utils.error_taxonomy import AppError
from paperpost.utils.logging import setup_logging


def main(argv=None):
    parser = argparse.ArgumentParser(prog="paperpost")
    parser.add_argument(
        "--env-file", type=str, default=".env", help="Path to .env file"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # ingest
    p_ing = subparsers.add_parser("ingest", help="Store a PDF as a new document")
    p_ing.add_argument("pdf")
    p_ing.add_argument(
        "--process", action="store_true", help="Run the pipeline right after ingest"
    )

    # process
    p_proc = subparsers.add_parser("process", help="Run the pipeline for a document")
    p_proc.add_argument("document_id")

    # status
    p_stat = subparsers.add_parser("status", help="Show document status and job runs")
    p_stat.add_argument("document_id")

    # results
    p_res = subparsers.add_parser("results", help="Show everything stored for a document")
    p_res.add_argument("document_id")

    args = parser.parse_args(argv)

    if os.path.exists(args.env_file):
        load_dotenv(dotenv_path=args.env_file)

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Settings validation error:\n{e}", file=sys.stderr)
        return 1

    setup_logging(
        level=settings.log_level.upper(),
        log_file=str(settings.log_file) if settings.log_file else None,
    )
    services = build_services(settings)

    try:
        if args.command == "ingest":
            document = ingest_document_from_path(
                repo=services.repo,
                artifacts_manager=services.artifacts_manager,
                source_path=args.pdf,
            )
            if args.process:
                services.orchestrator.run(document.document_id)
                document = services.repo.get_document(document.document_id)
            _print_json(asdict(document))

        elif args.command == "process":
            services.orchestrator.run(args.document_id)
            _print_json(_status_payload(services.repo, args.document_id))

        elif args.command == "status":
            _print_json(_status_payload(services.repo, args.document_id))

        elif args.command == "results":
            results = services.repo.get_document_results(args.document_id)
            if results is None:
                raise KeyError(f"Document not found: {args.document_id}")
            _print_json(asdict(results))

    except AppError as e:
        print(f"{e.kind}: {e.friendly_message}\n{e.message}", file=sys.stderr)
        return 1
    except KeyError as e:
        print(e.args[0] if e.args else "Document not found", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        return 1

    return 0


def _status_payload(repo, document_id):
    document = repo.get_document(document_id)
    if document is None:
        raise KeyError(f"Document not found: {document_id}")
    return {
        "document_id": document.document_id,
        "status": document.status,
        "job_runs": [asdict(item) for item in repo.list_job_runs(document_id)],
    }


def _print_json(payload):
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


if __name__ == "__main__":
    sys.exit(main())
