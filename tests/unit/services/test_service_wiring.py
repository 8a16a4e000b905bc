"""
Tests for the ServiceRegistry
"""

import pytest
from unittest.mock import Mock

from services.service_registry import ServiceLifecycle, ServiceRegistry, create_registry


@pytest.fixture
def registry():
    return create_registry()


class TestServiceRegistry:

    def test_singleton_is_built_once(self, registry):
        factory = Mock(side_effect=lambda: object())
        registry.register_singleton('client', factory)

        assert registry.get('client') is registry.get('client')
        factory.assert_called_once()

    def test_transient_is_built_every_time(self, registry):
        registry.register_factory('db_session', lambda: object(), lifecycle=ServiceLifecycle.TRANSIENT)
        assert registry.get('db_session') is not registry.get('db_session')

    def test_dependencies_are_passed_as_keyword_arguments(self, registry):
        registry.register_singleton('db_session', lambda: 'session')
        registry.register_factory('repo', lambda db_session: ('repo', db_session), dependencies=['db_session'])

        assert registry.get('repo') == ('repo', 'session')

    def test_unregistered_service(self, registry):
        with pytest.raises(ValueError):
            registry.get('missing')

    def test_registered_instance_replaces_factory(self, registry):
        registry.register_singleton('ai', lambda: 'real')
        fake = object()
        registry.register_instance('ai', fake)
        assert registry.get('ai') is fake

    def test_validate_dependencies_reports_missing(self, registry):
        registry.register_factory('repo', lambda db_session: None, dependencies=['db_session'])

        errors = registry.validate_dependencies()

        assert errors == ["Service 'repo' depends on unregistered service 'db_session'"]

    def test_initialization_order_respects_dependencies(self, registry):
        registry.register_factory('service', lambda repo: None, dependencies=['repo'])
        registry.register_factory('repo', lambda db_session: None, dependencies=['db_session'])
        registry.register_factory('db_session', lambda: None)

        order = registry.get_initialization_order()

        assert order.index('db_session') < order.index('repo') < order.index('service')

    def test_cycle_detected(self, registry):
        registry.register_factory('a', lambda b: None, dependencies=['b'])
        registry.register_factory('b', lambda a: None, dependencies=['a'])

        with pytest.raises(RuntimeError, match='Circular dependency'):
            registry.get_initialization_order()
        with pytest.raises(RuntimeError, match='Circular dependency'):
            registry.get('a')

    def test_warmup_builds_requested_singletons(self, registry):
        factory = Mock(return_value='client')
        registry.register_singleton('client', factory)
        other = Mock()
        registry.register_singleton('other', other)

        registry.warmup(['client'])

        factory.assert_called_once()
        other.assert_not_called()
        assert registry.has('client')
        assert registry.has('other')


class TestApplicationRegistry:

    def test_app_registry_resolves_pipeline(self, services):
        intake = services.get('message_intake')
        assert intake.context_window_size == 10
        assert intake.handover_service.confidence_threshold == 0.7

    def test_app_registry_has_no_dangling_dependencies(self, app):
        assert app.services.validate_dependencies() == []

    def test_dispatcher_shares_intake_contact_lock(self, services):
        lock = services.get('contact_lock')
        assert services.get('campaign_dispatcher').contact_lock is lock
        assert services.get('message_intake').contact_lock is lock
        assert services.get('follow_up').contact_lock is lock
