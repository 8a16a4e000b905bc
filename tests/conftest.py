# tests/conftest.py
"""
Shared fixtures for the pytest test suite.

Every test gets a fresh application with its own in-memory database and its
own service registry. External collaborators (WhatsApp, Gemini, the
automation webhook) are replaced in the registry with recording fakes, so no
test touches the network.
"""
import os

# Must be set before app/celery_worker are imported: celery_worker builds an app at import time
os.environ['FLASK_ENV'] = 'testing'

import pytest

from app import create_app
from extensions import db
from crm_database import Contact, ContactTag, Campaign, Trigger
from tests.helpers import FakeWhatsAppClient, FakeAIService, FakeAutomationClient


@pytest.fixture
def app():
    """
    A fresh Flask application per test with tables created in an in-memory
    database. The app context stays pushed for the duration of the test.
    """
    app = create_app(config_name='testing', test_config={
        'SERVER_NAME': 'localhost.localdomain'
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    return db.session


@pytest.fixture
def fake_whatsapp():
    return FakeWhatsAppClient()


@pytest.fixture
def fake_ai():
    return FakeAIService()


@pytest.fixture
def fake_automation():
    return FakeAutomationClient()


@pytest.fixture
def services(app, fake_whatsapp, fake_ai, fake_automation):
    """The app's service registry with external clients replaced by fakes"""
    registry = app.services
    registry.register_instance('whatsapp_client', fake_whatsapp)
    registry.register_instance('ai', fake_ai)
    registry.register_instance('automation_client', fake_automation)
    return registry


@pytest.fixture
def make_contact(db_session):
    """Factory fixture: make_contact(phone, name=..., tags=[...])"""
    def _make(phone_number, name=None, tags=(), **fields):
        contact = Contact(phone_number=phone_number, name=name, contact_metadata=fields.pop('metadata', {}),
                          **fields)
        for tag in tags:
            contact.tags.append(ContactTag(tag=tag))
        db_session.add(contact)
        db_session.commit()
        return contact
    return _make


@pytest.fixture
def make_campaign(db_session):
    def _make(message_template='Hi {{name}}', target_tags=None, status='draft', **fields):
        campaign = Campaign(
            name=fields.pop('name', 'Test Campaign'),
            message_template=message_template,
            target_tags=list(target_tags or []),
            status=status,
            **fields
        )
        db_session.add(campaign)
        db_session.commit()
        return campaign
    return _make


@pytest.fixture
def make_trigger(db_session):
    def _make(name, rules, action, match='all', is_active=True):
        trigger = Trigger(
            name=name,
            event_type='message_received',
            conditions={'match': match, 'rules': rules},
            action=action,
            is_active=is_active,
            execution_count=0,
        )
        db_session.add(trigger)
        db_session.commit()
        return trigger
    return _make
