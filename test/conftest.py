import pytest
from loguru import logger

import picolog_udp
from picolog_udp.util import TEST_LOGLEVEL


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "slow: marks test as slow running test")
    config.addinivalue_line(
        "markers", "hardware: marks test that require physical hardware"
    )


@pytest.fixture(autouse=True, scope="session")
def test_log():
    picolog_udp.util.start_log(
        log_to_file=False, log_to_stdout=True, log_level=TEST_LOGLEVEL
    )
    yield
    picolog_udp.util.shutdown_log()


@pytest.fixture(autouse=True)
def log(request):
    logger.warning("STARTED Test '{}'".format(request.node.originalname))
    yield
    logger.warning("COMPLETED Test '{}' \n".format(request.node.originalname))
