import uuid
from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, ForeignKey, JSON, UniqueConstraint
from ticketdesk.core.db import Base, utcnow


def _generate_id() -> str:
    return str(uuid.uuid4())


class Category(Base):
    __tablename__ = "categories"

    id = Column(String(64), primary_key=True, default=_generate_id)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    icon = Column(String(100), nullable=True)
    color = Column(String(32), nullable=True)
    default_department = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)


class Subcategory(Base):
    __tablename__ = "subcategories"
    __table_args__ = (UniqueConstraint("category_id", "name", name="uq_subcategory_category_name"),)

    id = Column(String(64), primary_key=True, default=_generate_id)
    category_id = Column(String(64), ForeignKey("categories.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    default_department = Column(String(100), nullable=True)
    # Denormalized copy of the resolved schema: {"fields": [descriptor, ...]}
    form_fields = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)


class FieldGroup(Base):
    __tablename__ = "field_groups"

    id = Column(String(200), primary_key=True)
    name = Column(String(255), nullable=False)
    category_id = Column(String(64), ForeignKey("categories.id"), nullable=False)
    subcategory_id = Column(String(64), ForeignKey("subcategories.id"), nullable=False, index=True)
    field_ids = Column(JSON, nullable=False, default=list)
    order_index = Column(Integer, nullable=False, default=0)
    is_collapsible = Column(Boolean, nullable=False, default=True)
    is_collapsed_by_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)


class FormField(Base):
    __tablename__ = "form_fields"

    id = Column(String(200), primary_key=True)
    label = Column(String(255), nullable=False, index=True)
    field_type = Column(String(50), nullable=False)
    options = Column(JSON, nullable=True)
    category = Column(String(255), nullable=True)
    sub_category = Column(String(255), nullable=True)
    category_id = Column(String(64), ForeignKey("categories.id"), nullable=True)
    subcategory_id = Column(String(64), ForeignKey("subcategories.id"), nullable=True, index=True)
    description = Column(Text, nullable=True)
    placeholder = Column(String(255), nullable=True)
    is_required = Column(Boolean, nullable=False, default=False)
    is_hidden = Column(Boolean, nullable=False, default=False)
    order_index = Column(Integer, nullable=False, default=0)
    validation = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
