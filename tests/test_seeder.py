import json
from sqlalchemy.orm import sessionmaker
import ticketdesk.seed as seed_cli
from ticketdesk.core import classification
from ticketdesk.core.seeder import group_id_for, load_categories, load_templates, seed_categories, seed_templates
from ticketdesk.models.classification import Category, FieldGroup, FormField, Subcategory
from ticketdesk.schemas.classification import TicketTemplate


def row_counts(db):
    return {
        model.__name__: db.query(model).count()
        for model in (Category, Subcategory, FormField, FieldGroup)
    }


def cached_schemas(db):
    return {sub.name: sub.form_fields for sub in db.query(Subcategory).all()}


def test_bundled_templates_load():
    templates = load_templates()
    names = [template.subcategory_name for template in templates]
    assert len(templates) == 7
    assert "Hosted Class Feedback" in names
    assert "Studio Repair & Maintenance" in names
    assert {template.category_name for template in templates} == {"Class & Instruction", "Facilities & Equipment"}


def test_bundled_field_ids_are_unique():
    ids = [field.id for t in load_templates() for s in t.sections for field in s.fields]
    assert len(ids) == len(set(ids))


def test_bundled_category_catalog():
    categories = load_categories()
    assert len(categories) == 8
    assert categories[0].name == "Global"
    assert all(category.icon and category.color and category.description for category in categories)


def test_seed_report_counts(db_session):
    templates = load_templates()
    report = seed_categories(db_session, load_categories())
    seed_templates(db_session, templates, report)
    db_session.commit()

    assert report.templates == len(templates)
    assert report.categories_created == 8
    assert report.subcategories_created == 7
    assert report.fields_upserted == sum(len(s.fields) for t in templates for s in t.sections)
    assert report.groups_upserted == sum(len(t.sections) for t in templates)


def test_templates_alone_create_their_categories(db_session):
    report = seed_templates(db_session, load_templates())
    db_session.commit()

    assert report.categories_created == 2
    category = classification.find_category_by_name(db_session, "class & instruction")
    assert category.icon is None


def test_catalog_sets_presentation_fields(db_session, seeded):
    category = classification.find_category_by_name(db_session, "Facilities & Equipment")
    assert category.icon == "Building"
    assert category.color == "#f59e0b"
    assert category.description == "Physical space, equipment, and infrastructure issues"


def test_catalog_fills_in_a_category_created_by_a_template(db_session):
    seed_templates(db_session, load_templates())
    report = seed_categories(db_session, load_categories())
    db_session.commit()

    assert report.categories_created == 6
    category = classification.find_category_by_name(db_session, "Class & Instruction")
    assert category.icon is not None
    assert db_session.query(Category).count() == 8


def test_seeding_twice_is_idempotent(db_session, seeded):
    counts = row_counts(db_session)
    schemas = cached_schemas(db_session)

    report = seed_categories(db_session, load_categories())
    seed_templates(db_session, load_templates(), report)
    db_session.commit()

    assert report.categories_created == 0
    assert report.subcategories_created == 0
    assert row_counts(db_session) == counts
    assert cached_schemas(db_session) == schemas


def test_seeded_schema_follows_section_order(db_session, seeded):
    category = classification.find_category_by_name(db_session, "Class & Instruction")
    hosted = classification.find_subcategory_by_name(db_session, category.id, "hosted class feedback")

    fields = hosted.form_fields["fields"]
    assert [entry["id"] for entry in fields[:4]] == [
        "p57_hc_event_date",
        "p57_hc_location",
        "p57_hc_partner_name",
        "p57_hc_logged_by",
    ]
    assert [entry["orderIndex"] for entry in fields] == list(range(len(fields)))
    assert fields[0]["groupId"] == group_id_for("Hosted Class Feedback", "Identification")
    assert fields[-1]["groupName"] == "Routing"


def test_leak_report_sections_are_ordered(db_session, seeded):
    category = classification.find_category_by_name(db_session, "Facilities & Equipment")
    leak_report = classification.find_subcategory_by_name(db_session, category.id, "leak report")

    fields = leak_report.form_fields["fields"]
    assert [entry["id"] for entry in fields] == [
        "fac_leak_description",
        "fac_leak_severity",
        "fac_leak_area_closed",
        "fac_leak_contractor_ref",
    ]
    assert fields[0]["groupId"] == group_id_for("Leak Report", "Incident")
    assert fields[3]["isHidden"] is True


def test_group_ids_are_deterministic():
    assert group_id_for("Hosted Class Feedback", "Core Information") == "tmpl-hosted-class-feedback-core-information"
    assert group_id_for("Studio Repair & Maintenance", "Financial Impact") == "tmpl-studio-repair-maintenance-financial-impact"


def test_existing_category_is_matched_case_insensitively(db_session, seeded):
    template = TicketTemplate.model_validate({
        "categoryName": "FACILITIES & EQUIPMENT",
        "subcategoryName": "Broken Equipment",
        "sections": [{"name": "Details", "fields": [
            {"id": "fac_equipment_name", "label": "Equipment", "fieldType": "Text", "isRequired": True},
        ]}],
    })
    report = seed_templates(db_session, [template])
    db_session.commit()

    assert report.categories_created == 0
    assert report.subcategories_created == 1
    assert db_session.query(Category).filter(Category.name.ilike("facilities & equipment")).count() == 1


def test_reseeding_a_renamed_field_updates_it_in_place(db_session, seeded):
    templates = load_templates()
    templates[0].sections[0].fields[1].label = "Studio"
    seed_templates(db_session, templates)
    db_session.commit()

    field = db_session.get(FormField, "p57_hc_location")
    assert field.label == "Studio"
    category = classification.find_category_by_name(db_session, "Class & Instruction")
    hosted = classification.find_subcategory_by_name(db_session, category.id, "Hosted Class Feedback")
    assert hosted.form_fields["fields"][1]["label"] == "Studio"


def test_options_on_free_text_fields_are_dropped(db_session):
    template = TicketTemplate.model_validate({
        "categoryName": "Facilities",
        "subcategoryName": "Lost Property",
        "sections": [{"name": "Item", "fields": [
            {"id": "lp_item", "label": "Item", "fieldType": "Text", "options": ["Bag", "Bottle"]},
        ]}],
    })
    seed_templates(db_session, [template])
    db_session.commit()
    assert db_session.get(FormField, "lp_item").options is None


def test_seed_command_writes_a_template_file(db_session, monkeypatch, tmp_path):
    path = tmp_path / "templates.json"
    path.write_text(json.dumps([{
        "categoryName": "Retail",
        "subcategoryName": "Damaged Stock",
        "sections": [{"name": "Item", "fields": [
            {"id": "rt_item", "label": "Item", "fieldType": "Text", "isRequired": True},
        ]}],
    }]), encoding="utf-8")
    monkeypatch.setattr(seed_cli, "SessionLocal", sessionmaker(bind=db_session.get_bind()))

    assert seed_cli.main(["--file", str(path)]) == 0
    assert classification.find_category_by_name(db_session, "retail") is not None
    assert classification.find_category_by_name(db_session, "health & safety") is not None
    assert db_session.get(FormField, "rt_item").label == "Item"
