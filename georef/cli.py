# georef/cli.py
"""
Operational command line for the PSGC hierarchy.

    georef init-db
    georef import --regions regions.csv --provinces provinces.csv \\
                  --cities cities.csv --barangays barangays.csv [--mode replace]
    georef audit
    georef synthesize
    georef remediate --action delete-orphans --level barangay
    georef serve --port 8080
"""
import argparse
import json
import logging
import sys

from georef.core.config import settings
from georef.core.database import SessionLocal, build_engine, build_session_factory, init_db
from georef.core.exceptions import GeoRefError
from georef.core.logging_config import setup_logging
from georef.services.ingestion_service import IngestionPipeline, ImportOptions
from georef.services.integrity_service import IntegrityAuditor
from georef.services.parent_synthesizer import ParentSynthesizer
from georef.services.psgc_sources import PsgcSources, read_source
from georef.services.remediation_service import ACTIONS, RemediationService

logger = logging.getLogger(__name__)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _session_factory(args):
    if args.database_url:
        engine = build_engine(args.database_url, echo=settings.DATABASE_ECHO)
        return engine, build_session_factory(engine)
    return None, SessionLocal


# ========================================
# COMMANDS
# ========================================

def cmd_init_db(args, session_factory) -> int:
    init_db(bind=session_factory.kw.get("bind"))
    logger.info("✅ Tables created")
    return 0


def cmd_import(args, session_factory) -> int:
    sources = PsgcSources(
        regions=args.regions,
        provinces=args.provinces,
        cities=args.cities,
        barangays=args.barangays,
    )
    if not any(sources.by_level().values()):
        logger.error("No source given (--regions, --provinces, --cities, --barangays)")
        return 2

    options = ImportOptions.from_settings(
        settings,
        mode=args.mode,
        on_error=args.on_error,
        batch_size=args.batch_size,
        max_workers=args.workers,
        strict=True if args.strict else None,
    )
    report = IngestionPipeline(session_factory, options).run_sources(
        sources, timeout=settings.SOURCE_HTTP_TIMEOUT
    )
    _print_json(report.to_dict())
    return 1 if report.aborted else 0


def cmd_audit(args, session_factory) -> int:
    with session_factory() as db:
        report = IntegrityAuditor(db, sample_size=args.sample).audit()
    _print_json(report.to_dict())
    return 0


def cmd_synthesize(args, session_factory) -> int:
    with session_factory() as db:
        result = ParentSynthesizer(db).synthesize_all()
    _print_json(result.to_dict())
    return 0


def cmd_remediate(args, session_factory) -> int:
    with session_factory() as db:
        service = RemediationService(db)
        if args.action == "nullify-independent":
            result = service.nullify_independent_provinces()
        elif args.action == "synthesize":
            result = service.synthesize_missing_parents()
        elif args.action == "delete-orphans":
            if not args.level:
                logger.error("--level is required for delete-orphans")
                return 2
            result = service.delete_orphans(args.level)
        elif args.action == "realign-parents":
            if not args.level:
                logger.error("--level is required for realign-parents")
                return 2
            result = service.realign_parents(args.level)
        elif args.action == "delete-placeholders":
            result = service.delete_unused_placeholders()
        else:
            if not args.reference:
                logger.error("--reference is required for reconcile-provinces")
                return 2
            reference = read_source(args.reference, timeout=settings.SOURCE_HTTP_TIMEOUT)
            result = service.reconcile_provinces(reference)
    _print_json(result.to_dict())
    return 0


def cmd_serve(args, session_factory) -> int:
    import uvicorn

    uvicorn.run("georef.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


# ========================================
# PARSER
# ========================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="georef", description="PSGC geographic hierarchy tooling")
    parser.add_argument("--database-url", help="Overrides DATABASE_URL")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL)
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="Create the PSGC tables")
    p.set_defaults(handler=cmd_init_db)

    p = sub.add_parser("import", help="Import PSGC sources (CSV path or URL per level)")
    p.add_argument("--regions")
    p.add_argument("--provinces")
    p.add_argument("--cities")
    p.add_argument("--barangays")
    p.add_argument("--mode", choices=["merge", "replace"])
    p.add_argument("--on-error", dest="on_error", choices=["continue", "abort"])
    p.add_argument("--batch-size", dest="batch_size", type=int)
    p.add_argument("--workers", type=int)
    p.add_argument("--strict", action="store_true", help="Abort on the first malformed row")
    p.set_defaults(handler=cmd_import)

    p = sub.add_parser("audit", help="Print the integrity report")
    p.add_argument("--sample", type=int, default=settings.AUDIT_SAMPLE_SIZE)
    p.set_defaults(handler=cmd_audit)

    p = sub.add_parser("synthesize", help="Create placeholder parents for orphans")
    p.set_defaults(handler=cmd_synthesize)

    p = sub.add_parser("remediate", help="Apply one remediation action")
    p.add_argument("--action", required=True, choices=ACTIONS)
    p.add_argument("--level", choices=["province", "city", "barangay"])
    p.add_argument("--reference", help="Authoritative province source for reconcile-provinces")
    p.set_defaults(handler=cmd_remediate)

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=8080)
    p.add_argument("--reload", action="store_true")
    p.set_defaults(handler=cmd_serve)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    engine, session_factory = _session_factory(args)
    try:
        return args.handler(args, session_factory)
    except GeoRefError as e:
        logger.error(f"❌ {e}")
        return 1
    finally:
        if engine is not None:
            engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
