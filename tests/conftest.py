"""
pytest configuration for the gateway client tests.

Adds src directory to Python path for imports and resets module-level state
(log context, default gateway endpoint, config singleton) between tests.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))


@pytest.fixture(autouse=True)
def _reset_global_state():
    from config.config import reset_config
    from core.logging.context import clear_log_context
    from gateway.transport import reset_default_gateway_url

    clear_log_context()
    reset_default_gateway_url()
    reset_config()
    yield
    clear_log_context()
    reset_default_gateway_url()
    reset_config()
