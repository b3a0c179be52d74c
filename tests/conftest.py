from datetime import datetime, timedelta
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from ticketdesk.api.deps import get_notifier
from ticketdesk.core.db import Base, get_db
from ticketdesk.core.notifications import RecordingNotifier
from ticketdesk.core.seeder import load_categories, load_templates, seed_categories, seed_templates
from ticketdesk.main import app
from ticketdesk.schemas.classification import TicketTemplate

# Setup a SQLite file database for testing; concurrency tests need two connections to it
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_ticketdesk.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="function")
def db_session():
    # Create the tables
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        # Drop the tables after the test
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 9, 0, 0))


LEAK_REPORT_TEMPLATE = TicketTemplate.model_validate({
    "categoryName": "Facilities & Equipment",
    "subcategoryName": "Leak Report",
    "subcategoryDescription": "Water leaks in studios, changing rooms or common areas",
    "sections": [
        {"name": "Incident", "fields": [
            {
                "id": "fac_leak_description",
                "label": "Leak Description",
                "fieldType": "Long Text",
                "isRequired": True,
                "validation": [{"kind": "minLength", "parameter": 50, "message": "Please describe the leak in at least 50 characters"}],
            },
            {"id": "fac_leak_severity", "label": "Severity", "fieldType": "Dropdown", "options": ["Low", "Medium", "High"], "isRequired": True},
            {"id": "fac_leak_area_closed", "label": "Area Closed", "fieldType": "Checkbox"},
        ]},
        {"name": "Follow-up", "fields": [
            {
                "id": "fac_leak_contractor_ref",
                "label": "Contractor Work Order",
                "fieldType": "Text",
                "isHidden": True,
                "validation": [{"kind": "pattern", "parameter": "^WO-[0-9]{4,8}$"}],
            },
        ]},
    ],
})


@pytest.fixture
def seeded(db_session):
    """Category catalog, bundled templates and the leak report template committed; returns the seed report."""
    report = seed_categories(db_session, load_categories())
    seed_templates(db_session, load_templates(), report)
    seed_templates(db_session, [LEAK_REPORT_TEMPLATE], report)
    db_session.commit()
    return report


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(db_session, notifier):
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
