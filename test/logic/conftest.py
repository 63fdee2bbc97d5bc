import pytest
from loguru import logger

from fakes import FakeHost, RecordingNotifier
from hallscope.session import CommandGateway, SampleStream
from hallscope.types import StreamConfig


@pytest.fixture(autouse=True)
def log(request):
    logger.warning("STARTED Test '{}'".format(request.node.originalname))

    def fin():
        logger.warning("COMPLETED Test '{}' \n".format(request.node.originalname))

    request.addfinalizer(fin)


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def gateway(host, notifier):
    return CommandGateway(host, notifier)


@pytest.fixture
def stream_config():
    return StreamConfig()


@pytest.fixture
def stream(stream_config):
    return SampleStream(stream_config)
