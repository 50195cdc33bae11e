"""
Tests for version information.
"""

from message_broker_sdk import __version__
from message_broker_sdk.version import VERSION, VERSION_TUPLE


class TestVersion:
    """Test cases for version information."""

    def test_version(self):
        assert __version__ == VERSION == "0.1.0"
        assert ".".join(map(str, VERSION_TUPLE)) == __version__
