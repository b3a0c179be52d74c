"""
Form schema resolution for subcategories.

A subcategory's schema is the concatenation of its field groups (ordered by
``order_index``), each contributing its fields in stored order. A field id
that shows up in more than one group is kept where it first appears.

The resolved schema is also stored on ``Subcategory.form_fields``; that copy
is what ticket submissions are validated against, so every write that can
change a schema calls ``refresh_schema_cache`` inside the same session.
"""
import logging
import re
from typing import Any, Dict, List, Mapping
from sqlalchemy.orm import Session
from ticketdesk.core.classification import get_subcategory
from ticketdesk.core.validation import EMAIL_PATTERN, PHONE_PATTERN, as_number, evaluate, is_empty, parse_date
from ticketdesk.models.classification import FieldGroup, FormField
from ticketdesk.schemas.classification import FieldDescriptor, FieldType, SubmissionResult, ValidationRule

logger = logging.getLogger(__name__)

REQUIRED_MESSAGE = "required"


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", str(text).strip().lower()).strip("-")[:80]


def _placeholder(field: FormField) -> str:
    if field.placeholder:
        return field.placeholder
    if field.field_type == FieldType.DROPDOWN.value:
        return f"Select {field.label}"
    return f"Enter {field.label.lower()}..."


def to_descriptor(field: FormField, group: FieldGroup) -> FieldDescriptor:
    return FieldDescriptor(
        id=field.id,
        key=slugify(field.label) or slugify(field.id) or field.id,
        label=field.label,
        field_type=field.field_type,
        options=field.options,
        is_required=field.is_required,
        is_hidden=field.is_hidden,
        description=field.description,
        placeholder=_placeholder(field),
        order_index=field.order_index,
        validation=[ValidationRule.model_validate(rule) for rule in field.validation or []],
        group_id=group.id,
        group_name=group.name,
    )


def list_groups(db: Session, subcategory_id: str) -> List[FieldGroup]:
    return db.query(FieldGroup).filter(
        FieldGroup.subcategory_id == subcategory_id
    ).order_by(FieldGroup.order_index, FieldGroup.id).all()


def resolve_schema(db: Session, subcategory_id: str) -> List[FieldDescriptor]:
    """Flatten the subcategory's field groups into one ordered, de-duplicated field list."""
    get_subcategory(db, subcategory_id)
    groups = list_groups(db, subcategory_id)

    field_ids = {field_id for group in groups for field_id in group.field_ids or []}
    fields = {}
    if field_ids:
        fields = {field.id: field for field in db.query(FormField).filter(FormField.id.in_(field_ids))}

    seen = set()
    resolved = []
    for group in groups:
        for field_id in group.field_ids or []:
            if field_id in seen:
                logger.warning("Field %s appears in more than one group of subcategory %s; keeping the first",
                               field_id, subcategory_id)
                continue
            seen.add(field_id)
            field = fields.get(field_id)
            if field is None:
                logger.warning("Group %s references unknown field %s", group.id, field_id)
                continue
            if not field.is_active:
                continue
            resolved.append(to_descriptor(field, group))
    return resolved


def refresh_schema_cache(db: Session, subcategory_id: str) -> List[FieldDescriptor]:
    descriptors = resolve_schema(db, subcategory_id)
    subcategory = get_subcategory(db, subcategory_id)
    subcategory.form_fields = {"fields": [d.model_dump(by_alias=True, mode="json") for d in descriptors]}
    db.flush()
    logger.debug("Recomputed schema cache for subcategory %s (%d fields)", subcategory_id, len(descriptors))
    return descriptors


def get_form_schema(db: Session, subcategory_id: str) -> List[FieldDescriptor]:
    """The schema submissions are checked against, read from the subcategory's cache."""
    subcategory = get_subcategory(db, subcategory_id)
    if subcategory.form_fields is None:
        return refresh_schema_cache(db, subcategory_id)
    return [FieldDescriptor.model_validate(entry) for entry in subcategory.form_fields.get("fields", [])]


def _type_errors(field: FieldDescriptor, value: Any) -> List[str]:
    field_type = field.field_type
    if field_type == FieldType.EMAIL:
        if not isinstance(value, str) or EMAIL_PATTERN.fullmatch(value.strip()) is None:
            return ["must be a valid email address"]
    elif field_type == FieldType.PHONE:
        if PHONE_PATTERN.fullmatch(str(value).strip()) is None:
            return ["must be a valid phone number"]
    elif field_type == FieldType.NUMBER:
        if as_number(value) is None:
            return ["must be a number"]
    elif field_type == FieldType.CHECKBOX:
        if not isinstance(value, bool):
            return ["must be true or false"]
    elif field_type in (FieldType.DATE, FieldType.DATETIME):
        if parse_date(value) is None:
            return ["must be a valid date"]
    elif field_type == FieldType.DROPDOWN and field.options:
        chosen = value if isinstance(value, list) else [value]
        if any(choice not in field.options for choice in chosen):
            return [f"must be one of: {', '.join(field.options)}"]
    return []


def validate_form_data(fields: List[FieldDescriptor], form_data: Mapping[str, Any]) -> SubmissionResult:
    """
    Check submitted values against a resolved schema.

    Every failing rule of every field is reported. Hidden fields are filled in
    programmatically, so they are never required, but a value supplied for one
    is still validated. Keys that are not part of the schema are ignored.
    """
    errors: Dict[str, List[str]] = {}
    for field in fields:
        value = form_data.get(field.id)
        unchecked_box = field.field_type == FieldType.CHECKBOX and value is False
        if is_empty(value) or unchecked_box:
            if field.is_required and not field.is_hidden:
                errors[field.id] = [REQUIRED_MESSAGE]
            continue

        messages = _type_errors(field, value)
        for rule in field.validation:
            result = evaluate(rule, value)
            if not result.ok:
                messages.append(result.message)
        if messages:
            errors[field.id] = messages
    return SubmissionResult(ok=not errors, errors=errors)


def validate_submission(db: Session, subcategory_id: str, form_data: Mapping[str, Any]) -> SubmissionResult:
    return validate_form_data(get_form_schema(db, subcategory_id), form_data or {})
