"""
Bulk loading of the category catalog and ticket templates.

Seeding is idempotent: categories and subcategories are matched by name,
fields by id, and field group ids are derived from the subcategory and
section names, so running the same files again updates rows in place.
"""
import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Union
from sqlalchemy.orm import Session
from ticketdesk.core.classification import ensure_category, ensure_subcategory
from ticketdesk.core.registry import subcategories_using_field, upsert_field, upsert_group
from ticketdesk.core.schema_resolver import refresh_schema_cache, slugify
from ticketdesk.schemas.classification import (
    CHOICE_FIELD_TYPES,
    CategoryCreate,
    FieldGroupDefinition,
    FormFieldDefinition,
    SeedReport,
    TicketTemplate,
)

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DEFAULT_CATEGORIES_PATH = DATA_DIR / "categories.json"
DEFAULT_TEMPLATES_PATH = DATA_DIR / "templates.json"


def group_id_for(subcategory_name: str, section_name: str) -> str:
    return f"tmpl-{slugify(subcategory_name)}-{slugify(section_name)}"


def _load_json(path: Union[str, Path]):
    with open(path, encoding="utf-8") as handle:
        return json.load(handle)


def load_categories(path: Union[str, Path] = DEFAULT_CATEGORIES_PATH) -> List[CategoryCreate]:
    return [CategoryCreate.model_validate(document) for document in _load_json(path)]


def load_templates(path: Union[str, Path] = DEFAULT_TEMPLATES_PATH) -> List[TicketTemplate]:
    return [TicketTemplate.model_validate(document) for document in _load_json(path)]


def seed_categories(db: Session, categories: Iterable[CategoryCreate], report: Optional[SeedReport] = None) -> SeedReport:
    """
    Upsert the category catalog by name. Catalog values overwrite the
    description, icon, color and default department of existing rows.
    """
    if report is None:
        report = SeedReport()
    for entry in categories:
        category, created = ensure_category(db, entry.name, entry.description)
        report.categories_created += int(created)
        for key, value in entry.model_dump(exclude={"name"}, exclude_none=True).items():
            setattr(category, key, value)
    db.flush()
    return report


def seed_template(db: Session, template: TicketTemplate, report: SeedReport) -> None:
    category, created = ensure_category(db, template.category_name, f"{template.category_name} templates")
    report.categories_created += int(created)
    subcategory, created = ensure_subcategory(db, category.id, template.subcategory_name, template.subcategory_description)
    report.subcategories_created += int(created)

    affected = {subcategory.id}
    position = 0
    for section_index, section in enumerate(template.sections):
        for field in section.fields:
            upsert_field(db, FormFieldDefinition(
                id=field.id,
                label=field.label,
                field_type=field.field_type,
                # informational options on free-text fields are dropped
                options=field.options if field.field_type in CHOICE_FIELD_TYPES else None,
                is_required=field.is_required,
                is_hidden=field.is_hidden,
                description=field.description,
                order_index=position,
                validation=field.validation,
                category_id=category.id,
                subcategory_id=subcategory.id,
                category=category.name,
                sub_category=subcategory.name,
            ), refresh=False)
            affected |= subcategories_using_field(db, field.id)
            position += 1
            report.fields_upserted += 1

        upsert_group(db, FieldGroupDefinition(
            id=group_id_for(template.subcategory_name, section.name),
            name=section.name,
            subcategory_id=subcategory.id,
            field_ids=[field.id for field in section.fields],
            order_index=section_index,
            is_collapsible=True,
            is_collapsed_by_default=False,
        ), refresh=False)
        report.groups_upserted += 1

    for subcategory_id in sorted(affected):
        refresh_schema_cache(db, subcategory_id)
    logger.info("Seeded template: %s -> %s", template.subcategory_name, template.category_name)


def seed_templates(db: Session, templates: Iterable[TicketTemplate], report: Optional[SeedReport] = None) -> SeedReport:
    """Upsert every template. Does NOT commit; the caller owns the transaction."""
    if report is None:
        report = SeedReport()
    for template in templates:
        seed_template(db, template, report)
        report.templates += 1
    return report
