"""
Form field and field group registry.

Fields are upserted by id, never by (label, subcategory): a template may
rename a field and historical ``form_data`` keyed by that id stays valid.
Every mutation recomputes the schema cache of each subcategory it can affect,
in the caller's session, before the caller commits.
"""
import logging
from typing import List, Optional, Set
from sqlalchemy.orm import Session
from ticketdesk.core.classification import get_subcategory
from ticketdesk.core.db import utcnow
from ticketdesk.core.errors import NotFound, ValidationFailed
from ticketdesk.core.schema_resolver import refresh_schema_cache
from ticketdesk.models.classification import FieldGroup, FormField
from ticketdesk.schemas.classification import CHOICE_FIELD_TYPES, FieldGroupDefinition, FormFieldDefinition

logger = logging.getLogger(__name__)


def get_field(db: Session, field_id: str) -> FormField:
    field = db.get(FormField, field_id)
    if field is None:
        raise NotFound("FormField", field_id)
    return field


def get_group(db: Session, group_id: str) -> FieldGroup:
    group = db.get(FieldGroup, group_id)
    if group is None:
        raise NotFound("FieldGroup", group_id)
    return group


def _check_options(definition: FormFieldDefinition) -> None:
    if definition.field_type in CHOICE_FIELD_TYPES and not definition.options:
        raise ValidationFailed({definition.id: [f"{definition.field_type.value} fields need at least one option"]})
    if definition.field_type not in CHOICE_FIELD_TYPES and definition.options:
        raise ValidationFailed({definition.id: [f"{definition.field_type.value} fields do not take options"]})


def subcategories_using_field(db: Session, field_id: str) -> Set[str]:
    """Subcategories whose resolved schema may contain the field."""
    affected = set()
    field = db.get(FormField, field_id)
    if field is not None and field.subcategory_id:
        affected.add(field.subcategory_id)
    for group in db.query(FieldGroup).all():
        if field_id in (group.field_ids or []):
            affected.add(group.subcategory_id)
    return affected


def _check_group_membership(db: Session, definition: FormFieldDefinition) -> None:
    """A field scoped to a subcategory may only be listed by that subcategory's groups."""
    if definition.subcategory_id is None:
        return
    foreign = sorted(
        group.id for group in db.query(FieldGroup).all()
        if definition.id in (group.field_ids or []) and group.subcategory_id != definition.subcategory_id
    )
    if foreign:
        raise ValidationFailed({definition.id: [f"still listed by field groups of another subcategory: {', '.join(foreign)}"]})


def _refresh(db: Session, subcategory_ids: Set[str]) -> None:
    for subcategory_id in sorted(subcategory_ids):
        refresh_schema_cache(db, subcategory_id)


def upsert_field(db: Session, definition: FormFieldDefinition, refresh: bool = True) -> FormField:
    """
    Insert the field or update it in place. Upserting an inactive field
    reactivates it.

    ``refresh=False`` leaves cache recomputation to the caller, which the
    seeder uses to recompute once per template instead of once per field.
    """
    _check_options(definition)
    if definition.subcategory_id is not None:
        subcategory = get_subcategory(db, definition.subcategory_id)
        if definition.category_id is None:
            definition = definition.model_copy(update={"category_id": subcategory.category_id})
        _check_group_membership(db, definition)

    values = definition.model_dump(exclude={"id"})
    values["field_type"] = definition.field_type.value
    values["validation"] = [rule.model_dump(mode="json") for rule in definition.validation or []] or None

    field = db.get(FormField, definition.id)
    if field is None:
        field = FormField(id=definition.id, is_active=True, **values)
        db.add(field)
        logger.info("Registered form field %s (%s)", definition.id, definition.label)
    else:
        for key, value in values.items():
            setattr(field, key, value)
        field.is_active = True
        field.updated_at = utcnow()
    db.flush()

    if refresh:
        _refresh(db, subcategories_using_field(db, field.id))
    return field


def list_fields(db: Session, subcategory_id: str, include_inactive: bool = False) -> List[FormField]:
    query = db.query(FormField).filter(FormField.subcategory_id == subcategory_id)
    if not include_inactive:
        query = query.filter(FormField.is_active.is_(True))
    return query.order_by(FormField.order_index, FormField.id).all()


def search_fields(db: Session, text: str, limit: Optional[int] = 50) -> List[FormField]:
    query = db.query(FormField).filter(FormField.label.ilike(f"%{text.strip()}%")).order_by(FormField.label)
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def deactivate_field(db: Session, field_id: str) -> FormField:
    field = get_field(db, field_id)
    field.is_active = False
    field.updated_at = utcnow()
    db.flush()
    _refresh(db, subcategories_using_field(db, field_id))
    logger.info("Deactivated form field %s", field_id)
    return field


def _check_group_fields(db: Session, definition: FieldGroupDefinition) -> None:
    errors = {}
    for field_id in definition.field_ids:
        field = db.get(FormField, field_id)
        if field is None:
            errors[field_id] = ["unknown form field"]
        elif field.subcategory_id not in (None, definition.subcategory_id):
            errors[field_id] = [f"belongs to subcategory {field.subcategory_id}"]
    if len(set(definition.field_ids)) != len(definition.field_ids):
        errors[definition.id] = ["a field may appear only once in a group"]
    if errors:
        raise ValidationFailed(errors)


def upsert_group(db: Session, definition: FieldGroupDefinition, refresh: bool = True) -> FieldGroup:
    subcategory = get_subcategory(db, definition.subcategory_id)
    _check_group_fields(db, definition)

    affected = {subcategory.id}
    values = definition.model_dump(exclude={"id"})
    values["category_id"] = subcategory.category_id

    group = db.get(FieldGroup, definition.id)
    if group is None:
        group = FieldGroup(id=definition.id, **values)
        db.add(group)
    else:
        affected.add(group.subcategory_id)
        for key, value in values.items():
            setattr(group, key, value)
    db.flush()

    if refresh:
        _refresh(db, affected)
    return group


def remove_group(db: Session, group_id: str) -> None:
    group = get_group(db, group_id)
    subcategory_id = group.subcategory_id
    db.delete(group)
    db.flush()
    _refresh(db, {subcategory_id})
    logger.info("Removed field group %s from subcategory %s", group_id, subcategory_id)
