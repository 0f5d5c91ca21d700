"""Fixtures for AWS client tests.

Provides a factory-as-fixture for configurable fake boto3 clients.
"""

from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest


class FakePaginator:
    """Fake boto3 paginator that yields provided pages."""

    def __init__(self, pages):
        self._pages = list(pages)
        self.kwargs: Dict[str, Any] = {}

    def paginate(self, **kwargs):
        self.kwargs = kwargs
        for page in self._pages:
            yield page


class FakeClient:
    """Configurable fake boto3 client.

    API methods answer from ``api_responses``; a value that is an exception
    instance is raised, a list is consumed one entry per call.
    """

    def __init__(
        self,
        paginated_pages: Optional[List[Dict[str, Any]]] = None,
        api_responses: Optional[Dict[str, Any]] = None,
    ):
        self._paginated_pages = paginated_pages or []
        self._api_responses = api_responses or {}
        self.calls: List[Dict[str, Any]] = []
        self.paginator: Optional[FakePaginator] = None

    def get_paginator(self, method_name):
        self.paginator = FakePaginator(self._paginated_pages)
        return self.paginator

    def __getattr__(self, name: str):
        if name.startswith("_") or name not in self._api_responses:
            raise AttributeError(name)

        def _call(**kwargs):
            self.calls.append({"method": name, **kwargs})
            resp = self._api_responses[name]
            if isinstance(resp, list):
                resp = resp.pop(0) if len(resp) > 1 else resp[0]
            if isinstance(resp, Exception):
                raise resp
            return resp

        return _call


@pytest.fixture
def make_fake_client():
    """Factory fixture returning configured FakeClient instances."""

    def _factory(paginated_pages=None, api_responses=None):
        return FakeClient(paginated_pages=paginated_pages, api_responses=api_responses)

    return _factory


@pytest.fixture
def session_provider_for():
    """Build a SessionProvider stand-in handing out the given boto3 client."""

    def _factory(client):
        provider = MagicMock()
        provider.get_boto3_client.return_value = client
        return provider

    return _factory
