import pytest

from picolog_udp.device import find_devices
from picolog_udp.types import Variant


@pytest.fixture(scope="session")
def available_loggers():
    """Descriptors of every logger replying to discovery, by variant."""
    found = {}
    for variant in Variant:
        try:
            found[variant] = find_devices(variant)
        except PermissionError:
            pytest.skip("Binding the discovery port needs elevated privileges")
    return found


@pytest.fixture(params=list(Variant), ids=lambda v: v.value)
def variant(request, available_loggers):
    """Each variant with at least one logger on the network."""
    if not available_loggers[request.param]:
        pytest.skip(f"No {request.param.value} on the network")
    return request.param
