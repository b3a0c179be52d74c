import logging
from typing import List, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.orm import Session
from ticketdesk.core.errors import NotFound, PreconditionFailed
from ticketdesk.models.classification import Category, Subcategory
from ticketdesk.schemas.classification import CategoryCreate, SubcategoryCreate

logger = logging.getLogger(__name__)


def get_category(db: Session, category_id: str) -> Category:
    category = db.get(Category, category_id)
    if category is None:
        raise NotFound("Category", category_id)
    return category


def find_category_by_name(db: Session, name: str) -> Optional[Category]:
    return db.query(Category).filter(func.lower(Category.name) == name.strip().lower()).first()


def create_category(db: Session, data: CategoryCreate) -> Category:
    if find_category_by_name(db, data.name) is not None:
        raise PreconditionFailed(f"Category {data.name!r} already exists")
    category = Category(**data.model_dump(), is_active=True)
    db.add(category)
    db.flush()
    logger.info("Created category %s (%s)", category.name, category.id)
    return category


def ensure_category(db: Session, name: str, description: Optional[str] = None) -> Tuple[Category, bool]:
    """Get-or-create by case-insensitive name. Returns the category and whether it was created."""
    category = find_category_by_name(db, name)
    if category is not None:
        return category, False
    category = Category(name=name.strip(), description=description, is_active=True)
    db.add(category)
    db.flush()
    return category, True


def list_categories(db: Session, include_inactive: bool = False) -> List[Category]:
    query = db.query(Category)
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    return query.order_by(Category.name).all()


def deactivate_category(db: Session, category_id: str) -> Category:
    category = get_category(db, category_id)
    category.is_active = False
    db.flush()
    return category


def get_subcategory(db: Session, subcategory_id: str) -> Subcategory:
    subcategory = db.get(Subcategory, subcategory_id)
    if subcategory is None:
        raise NotFound("Subcategory", subcategory_id)
    return subcategory


def find_subcategory_by_name(db: Session, category_id: str, name: str) -> Optional[Subcategory]:
    return db.query(Subcategory).filter(
        Subcategory.category_id == category_id,
        func.lower(Subcategory.name) == name.strip().lower(),
    ).first()


def create_subcategory(db: Session, category_id: str, data: SubcategoryCreate) -> Subcategory:
    get_category(db, category_id)
    if find_subcategory_by_name(db, category_id, data.name) is not None:
        raise PreconditionFailed(f"Subcategory {data.name!r} already exists in this category")
    subcategory = Subcategory(category_id=category_id, is_active=True, form_fields={"fields": []}, **data.model_dump())
    db.add(subcategory)
    db.flush()
    logger.info("Created subcategory %s (%s) under %s", subcategory.name, subcategory.id, category_id)
    return subcategory


def ensure_subcategory(db: Session, category_id: str, name: str, description: Optional[str] = None) -> Tuple[Subcategory, bool]:
    subcategory = find_subcategory_by_name(db, category_id, name)
    if subcategory is not None:
        if description is not None:
            subcategory.description = description
        return subcategory, False
    subcategory = Subcategory(
        category_id=category_id,
        name=name.strip(),
        description=description,
        form_fields={"fields": []},
        is_active=True,
    )
    db.add(subcategory)
    db.flush()
    return subcategory, True


def list_subcategories(db: Session, category_id: str, include_inactive: bool = False) -> List[Subcategory]:
    query = db.query(Subcategory).filter(Subcategory.category_id == category_id)
    if not include_inactive:
        query = query.filter(Subcategory.is_active.is_(True))
    return query.order_by(Subcategory.name).all()


def deactivate_subcategory(db: Session, subcategory_id: str) -> Subcategory:
    subcategory = get_subcategory(db, subcategory_id)
    subcategory.is_active = False
    db.flush()
    return subcategory


def get_category_tree(db: Session) -> List[Tuple[Category, List[Subcategory]]]:
    return [(category, list_subcategories(db, category.id)) for category in list_categories(db)]


def resolve_classification(db: Session, category_id: str, subcategory_id: str) -> Tuple[Category, Subcategory]:
    """Check that a ticket can be filed under the given pairing."""
    category = get_category(db, category_id)
    subcategory = get_subcategory(db, subcategory_id)
    if subcategory.category_id != category.id:
        raise PreconditionFailed(
            f"Subcategory {subcategory_id} does not belong to category {category_id}",
            category_id=category_id,
            subcategory_id=subcategory_id,
        )
    if not category.is_active or not subcategory.is_active:
        raise PreconditionFailed("Tickets cannot be filed under an inactive category or subcategory")
    return category, subcategory
