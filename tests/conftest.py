"""
Test configuration and fixtures
"""
import sys
from pathlib import Path

# Add src to Python path so `clamm.*` imports work without installation
project_root = Path(__file__).parent.parent
src_path = project_root / "src"

sys.path.insert(0, str(src_path))

import pytest
from prometheus_client import CollectorRegistry


@pytest.fixture
def metrics_registry():
    """Isolated Prometheus registry so tests never share collectors."""
    return CollectorRegistry()
