from typing import List
from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from ticketdesk.api.deps import Actor, get_actor
from ticketdesk.core import classification
from ticketdesk.core.db import get_db
from ticketdesk.core.permissions import Permission, require_permission
from ticketdesk.core.schema_resolver import get_form_schema, validate_submission
from ticketdesk.schemas.classification import (
    CategoryCreate,
    CategoryResponse,
    CategoryTree,
    FieldDescriptor,
    SubcategoryCreate,
    SubcategoryResponse,
    SubmissionRequest,
    SubmissionResult,
)

router = APIRouter(prefix="/categories", tags=["Classification"])


@router.get("", response_model=List[CategoryTree])
def get_category_tree(db: Session = Depends(get_db)):
    """
    Active categories with their active subcategories, as shown when filing a ticket.
    """
    return [
        CategoryTree(
            **CategoryResponse.model_validate(category).model_dump(),
            subcategories=[SubcategoryResponse.model_validate(sub) for sub in subcategories],
        )
        for category, subcategories in classification.get_category_tree(db)
    ]


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(category_in: CategoryCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_permission(actor.role, Permission.MANAGE_CATEGORIES)
    try:
        category = classification.create_category(db, category_in)
        db.commit()
        db.refresh(category)
        return category
    except Exception:
        db.rollback()
        raise


@router.delete("/{category_id}", response_model=CategoryResponse)
def deactivate_category(category_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    """Categories are only ever deactivated; tickets keep pointing at them."""
    require_permission(actor.role, Permission.MANAGE_CATEGORIES)
    try:
        category = classification.deactivate_category(db, category_id)
        db.commit()
        db.refresh(category)
        return category
    except Exception:
        db.rollback()
        raise


@router.get("/{category_id}/subcategories", response_model=List[SubcategoryResponse])
def get_subcategories(
    category_id: str,
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
):
    classification.get_category(db, category_id)
    return classification.list_subcategories(db, category_id, include_inactive=include_inactive)


@router.post("/{category_id}/subcategories", response_model=SubcategoryResponse, status_code=status.HTTP_201_CREATED)
def create_subcategory(
    category_id: str,
    subcategory_in: SubcategoryCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    require_permission(actor.role, Permission.MANAGE_CATEGORIES)
    try:
        subcategory = classification.create_subcategory(db, category_id, subcategory_in)
        db.commit()
        db.refresh(subcategory)
        return subcategory
    except Exception:
        db.rollback()
        raise


@router.delete("/subcategories/{subcategory_id}", response_model=SubcategoryResponse)
def deactivate_subcategory(subcategory_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_permission(actor.role, Permission.MANAGE_CATEGORIES)
    try:
        subcategory = classification.deactivate_subcategory(db, subcategory_id)
        db.commit()
        db.refresh(subcategory)
        return subcategory
    except Exception:
        db.rollback()
        raise


@router.get("/subcategories/{subcategory_id}/schema", response_model=List[FieldDescriptor])
def get_subcategory_schema(subcategory_id: str, db: Session = Depends(get_db)):
    """The ordered form a ticket filed under this subcategory has to fill in."""
    schema = get_form_schema(db, subcategory_id)
    db.commit()
    return schema


@router.post("/subcategories/{subcategory_id}/validate", response_model=SubmissionResult)
def validate_form(subcategory_id: str, request: SubmissionRequest, db: Session = Depends(get_db)):
    """Dry-run validation so a form can highlight every offending field before submitting."""
    return validate_submission(db, subcategory_id, request.form_data)
