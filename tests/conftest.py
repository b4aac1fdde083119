import pytest
from pytest_socket import disable_socket

from store.outlets import OutletStore

FIXED_TIME = 1695456789


def pytest_runtest_setup():
    """
    Runs before every test.
    Network access is disabled: the charging API must never be hit
    from the test suite. Unix sockets stay allowed for the event loop.
    """
    disable_socket(allow_unix_socket=True)


@pytest.fixture
def fixed_store():
    """Store whose writes are all stamped with FIXED_TIME"""
    return OutletStore(clock=lambda: FIXED_TIME)
