"""
Pytest configuration and fixtures for the Site Importer test suite.
"""

import pytest


@pytest.fixture
def api_client():
    """Create a test API client."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def user(db):
    from django.contrib.auth import get_user_model

    return get_user_model().objects.create_user(username="operator", password="secret")


@pytest.fixture
def auth_client(api_client, user):
    """API client logged in as an operator."""
    from django.core.cache import cache

    # Throttle counters live in the local-memory cache
    cache.clear()
    api_client.force_authenticate(user=user)
    return api_client


@pytest.fixture
def ctx():
    from importer.services.tenancy import resolve_tenant

    return resolve_tenant("default")


@pytest.fixture
def import_job(db):
    """A pending website import of the fake shop."""
    from importer.models import ImportJob
    from importer.tests.fakes import ROOT_URL

    return ImportJob.objects.create(source_url=f"{ROOT_URL}/", source_kind="website")
