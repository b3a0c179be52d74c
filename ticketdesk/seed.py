"""
Load the category catalog and ticket templates into the database.

Usage:
    python -m ticketdesk.seed                      # bundled catalog and templates
    python -m ticketdesk.seed --file templates.json
    python -m ticketdesk.seed --categories categories.json --create-tables
"""
import argparse
import logging
import sys
from ticketdesk.core.db import Base, SessionLocal, engine
from ticketdesk.core.logging_config import configure_logging
from ticketdesk.core.seeder import (
    DEFAULT_CATEGORIES_PATH,
    DEFAULT_TEMPLATES_PATH,
    load_categories,
    load_templates,
    seed_categories,
    seed_templates,
)
import ticketdesk.models.classification  # noqa: F401
import ticketdesk.models.ticket  # noqa: F401

logger = logging.getLogger("ticketdesk.seed")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Seed categories, subcategories and form fields from templates")
    parser.add_argument("--file", default=str(DEFAULT_TEMPLATES_PATH), help="JSON file with a list of templates")
    parser.add_argument("--categories", default=str(DEFAULT_CATEGORIES_PATH), help="JSON file with the category catalog")
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables before seeding")
    args = parser.parse_args(argv)

    configure_logging()
    if args.create_tables:
        Base.metadata.create_all(bind=engine)

    categories = load_categories(args.categories)
    templates = load_templates(args.file)
    logger.info("Seeding %d categories and %d ticket templates", len(categories), len(templates))

    db = SessionLocal()
    try:
        report = seed_categories(db, categories)
        seed_templates(db, templates, report)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Seeding failed")
        return 1
    finally:
        db.close()

    logger.info(
        "Done: %d templates, %d new categories, %d new subcategories, %d fields, %d groups",
        report.templates, report.categories_created, report.subcategories_created,
        report.fields_upserted, report.groups_upserted,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
