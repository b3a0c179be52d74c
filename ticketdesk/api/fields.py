from typing import List, Optional
from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from ticketdesk.api.deps import Actor, get_actor
from ticketdesk.core import registry
from ticketdesk.core.db import get_db
from ticketdesk.core.permissions import Permission, require_permission
from ticketdesk.core.schema_resolver import list_groups
from ticketdesk.schemas.classification import (
    FieldGroupDefinition,
    FieldGroupResponse,
    FormFieldDefinition,
    FormFieldResponse,
)

router = APIRouter(tags=["Form Fields"])


@router.get("/fields", response_model=List[FormFieldResponse])
def get_fields(
    subcategory_id: Optional[str] = Query(None),
    search: Optional[str] = Query(None, min_length=1),
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
):
    """
    List the fields owned by a subcategory, or search every field by label.
    """
    if search:
        return registry.search_fields(db, search)
    if subcategory_id:
        return registry.list_fields(db, subcategory_id, include_inactive=include_inactive)
    return []


@router.put("/fields/{field_id}", response_model=FormFieldResponse)
def upsert_field(
    field_id: str,
    field_in: FormFieldDefinition,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """
    Create or replace a field definition. Schemas of every subcategory using
    the field are recomputed in the same transaction.
    """
    require_permission(actor.role, Permission.MANAGE_FORM_FIELDS)
    try:
        field = registry.upsert_field(db, field_in.model_copy(update={"id": field_id}))
        db.commit()
        db.refresh(field)
        return field
    except Exception:
        db.rollback()
        raise


@router.delete("/fields/{field_id}", response_model=FormFieldResponse)
def deactivate_field(field_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_permission(actor.role, Permission.MANAGE_FORM_FIELDS)
    try:
        field = registry.deactivate_field(db, field_id)
        db.commit()
        db.refresh(field)
        return field
    except Exception:
        db.rollback()
        raise


@router.get("/field-groups", response_model=List[FieldGroupResponse])
def get_field_groups(subcategory_id: str, db: Session = Depends(get_db)):
    return list_groups(db, subcategory_id)


@router.put("/field-groups/{group_id}", response_model=FieldGroupResponse)
def upsert_field_group(
    group_id: str,
    group_in: FieldGroupDefinition,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    require_permission(actor.role, Permission.MANAGE_FORM_FIELDS)
    try:
        group = registry.upsert_group(db, group_in.model_copy(update={"id": group_id}))
        db.commit()
        db.refresh(group)
        return group
    except Exception:
        db.rollback()
        raise


@router.delete("/field-groups/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_field_group(group_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_permission(actor.role, Permission.MANAGE_FORM_FIELDS)
    try:
        registry.remove_group(db, group_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
