"""
Command-line entry point for the knowledge base.

Owns the process lifecycle: builds the engine and embedder from settings,
wires the services, runs one command, disposes of the engine.

    python cli.py init-db
    python cli.py create-agent "Support Bot"
    python cli.py upload <agent_id> ./faq.txt
    python cli.py query <agent_id> "How do I reset my password?"
"""

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from core.config import Settings, settings as default_settings
from core.database import create_engine_from_settings, create_session_factory, dispose_engine, drop_db, init_db
from models.agent import AgentCreateRequest
from models.knowledge import DocumentStatus, DocumentUploadRequest, RagConfigUpdateRequest
from services.agent_service import AgentService
from services.embedding_service import create_embedder
from services.exceptions import KnowledgeBaseError
from services.knowledge_service import KnowledgeService

logger = logging.getLogger(__name__)


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"expected a boolean, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Agent knowledge base (RAG) tools")
    parser.add_argument("--embedding-provider", default=None, help="Override EMBEDDING_PROVIDER")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create all tables")
    sub.add_parser("reset-db", help="Drop and recreate all tables")

    create_agent = sub.add_parser("create-agent", help="Create an agent")
    create_agent.add_argument("name")
    create_agent.add_argument("--system-prompt", default=None)

    delete_agent = sub.add_parser("delete-agent", help="Delete an agent and its knowledge base")
    delete_agent.add_argument("agent_id")

    upload = sub.add_parser("upload", help="Upload and index a plain-text document")
    upload.add_argument("agent_id")
    upload.add_argument("path", type=Path)

    documents = sub.add_parser("documents", help="List an agent's documents")
    documents.add_argument("agent_id")

    delete = sub.add_parser("delete", help="Delete a document and its chunks")
    delete.add_argument("document_id")

    reprocess = sub.add_parser("reprocess", help="Re-index a stored document")
    reprocess.add_argument("document_id")

    config = sub.add_parser("config", help="Show or update an agent's RAG configuration")
    config.add_argument("agent_id")
    config.add_argument("--enabled", type=_parse_bool, default=None)
    config.add_argument("--chunk-size", type=int, default=None)
    config.add_argument("--chunk-overlap", type=int, default=None)
    config.add_argument("--top-k", type=int, default=None)
    config.add_argument("--similarity-threshold", type=float, default=None)

    search = sub.add_parser("search", help="Show ranked matches with scores")
    search.add_argument("agent_id")
    search.add_argument("query")
    search.add_argument("--top-k", type=int, default=None)

    query = sub.add_parser("query", help="Print the augmented prompt for a message")
    query.add_argument("agent_id")
    query.add_argument("message")

    return parser


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


async def run(args: argparse.Namespace, settings: Settings) -> int:
    engine = create_engine_from_settings(settings)
    try:
        if args.command == "reset-db":
            await drop_db(engine)
        await init_db(engine)
        if args.command in ("init-db", "reset-db"):
            logger.info("✅ Database ready")
            return 0

        session_factory = create_session_factory(engine)
        embedder = create_embedder(settings, args.embedding_provider)
        knowledge = KnowledgeService.create(session_factory, embedder)
        agents = AgentService(session_factory, knowledge.store)

        if args.command == "create-agent":
            agent = await agents.create_agent(AgentCreateRequest(name=args.name, system_prompt=args.system_prompt))
            _print_json(agent.model_dump(mode="json"))
        elif args.command == "delete-agent":
            if not await agents.delete_agent(args.agent_id):
                logger.error("❌ Agent not found: %s", args.agent_id)
                return 1
        elif args.command == "upload":
            content = args.path.read_text(encoding="utf-8")
            request = DocumentUploadRequest(
                file_name=args.path.name,
                file_type=mimetypes.guess_type(args.path.name)[0] or "text/plain",
                file_size=args.path.stat().st_size,
                content=content,
            )
            document = await knowledge.upload_document(args.agent_id, request)
            _print_json(document.model_dump(mode="json", exclude={"content"}))
            return 0 if document.status == DocumentStatus.COMPLETED else 1
        elif args.command == "documents":
            _print_json([d.model_dump(mode="json", exclude={"content"}) for d in await knowledge.list_documents(args.agent_id)])
        elif args.command == "delete":
            if not await knowledge.delete_document(args.document_id):
                logger.error("❌ Document not found: %s", args.document_id)
                return 1
        elif args.command == "reprocess":
            document = await knowledge.reprocess_document(args.document_id)
            _print_json(document.model_dump(mode="json", exclude={"content"}))
        elif args.command == "config":
            update = RagConfigUpdateRequest(
                enabled=args.enabled,
                chunk_size=args.chunk_size,
                chunk_overlap=args.chunk_overlap,
                top_k=args.top_k,
                similarity_threshold=args.similarity_threshold,
            )
            if update.model_dump(exclude_none=True):
                config = await knowledge.update_config(args.agent_id, update)
            else:
                config = await knowledge.get_config(args.agent_id)
            _print_json(config.model_dump(mode="json"))
        elif args.command == "search":
            results = await knowledge.search(args.agent_id, args.query, args.top_k)
            _print_json([r.model_dump(mode="json") for r in results])
        elif args.command == "query":
            print(await knowledge.build_augmented_prompt(args.agent_id, args.message))
        return 0
    finally:
        await dispose_engine(engine)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, default_settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        return asyncio.run(run(args, default_settings))
    except KnowledgeBaseError as exc:
        logger.error("❌ %s failed [%s]: %s", args.command, exc.stage, exc.message)
        return 1
    except ValidationError as exc:
        logger.error("❌ %s failed [input]: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
