from pydantic import Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum
from ticketdesk.schemas.base import CamelModel


class FieldType(str, Enum):
    SHORT_TEXT = "Text"
    LONG_TEXT = "Long Text"
    EMAIL = "Email"
    PHONE = "Phone"
    DROPDOWN = "Dropdown"
    DATE = "Date"
    DATETIME = "DateTime"
    NUMBER = "Number"
    CHECKBOX = "Checkbox"
    FILE_UPLOAD = "File Upload"
    AUTO_GENERATED = "Auto-generated"

CHOICE_FIELD_TYPES = frozenset({FieldType.DROPDOWN})


class ValidationRule(CamelModel):
    kind: str = Field(..., description="minLength, maxLength, pattern, range, min, max or custom.")
    parameter: Any = Field(None, description="Rule argument; its shape depends on the kind.")
    message: Optional[str] = Field(None, description="Message reported when the rule fails.")


class FormFieldDefinition(CamelModel):
    id: str = Field(..., description="Stable id; upserts are keyed on it.")
    label: str
    field_type: FieldType
    options: Optional[List[str]] = Field(None, description="Ordered choices, required for choice-based types.")
    is_required: bool = False
    is_hidden: bool = False
    description: Optional[str] = None
    placeholder: Optional[str] = None
    order_index: int = 0
    validation: Optional[List[ValidationRule]] = None
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    category: Optional[str] = None
    sub_category: Optional[str] = None


class FormFieldResponse(FormFieldDefinition):
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FieldDescriptor(CamelModel):
    """One entry of a resolved schema, as stored in ``Subcategory.form_fields``."""

    id: str
    key: str
    label: str
    field_type: FieldType
    options: Optional[List[str]] = None
    is_required: bool = False
    is_hidden: bool = False
    description: Optional[str] = None
    placeholder: Optional[str] = None
    order_index: int = 0
    validation: List[ValidationRule] = []
    group_id: Optional[str] = None
    group_name: Optional[str] = None


class FieldGroupDefinition(CamelModel):
    id: str
    name: str
    subcategory_id: str
    field_ids: List[str] = []
    order_index: int = 0
    is_collapsible: bool = True
    is_collapsed_by_default: bool = False


class FieldGroupResponse(FieldGroupDefinition):
    category_id: str
    created_at: Optional[datetime] = None


class CategoryCreate(CamelModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    default_department: Optional[str] = None


class CategoryResponse(CategoryCreate):
    id: str
    is_active: bool
    created_at: Optional[datetime] = None


class SubcategoryCreate(CamelModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    default_department: Optional[str] = None


class SubcategoryResponse(SubcategoryCreate):
    id: str
    category_id: str
    form_fields: Optional[Dict[str, Any]] = None
    is_active: bool
    created_at: Optional[datetime] = None


class CategoryTree(CategoryResponse):
    subcategories: List[SubcategoryResponse] = []


class SubmissionRequest(CamelModel):
    form_data: Dict[str, Any] = {}


class SubmissionResult(CamelModel):
    ok: bool
    errors: Dict[str, List[str]] = {}


class TemplateField(CamelModel):
    id: str
    label: str
    field_type: FieldType
    options: Optional[List[str]] = None
    is_required: bool = False
    is_hidden: bool = False
    description: Optional[str] = None
    validation: Optional[List[ValidationRule]] = None


class TemplateSection(CamelModel):
    name: str
    fields: List[TemplateField] = []


class TicketTemplate(CamelModel):
    category_name: str
    subcategory_name: str
    subcategory_description: Optional[str] = None
    sections: List[TemplateSection] = []


class SeedReport(CamelModel):
    templates: int = 0
    categories_created: int = 0
    subcategories_created: int = 0
    fields_upserted: int = 0
    groups_upserted: int = 0
