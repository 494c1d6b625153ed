from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from landing_edge.core.experiments_config import ExperimentsConfig


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: slow running tests")


@pytest.fixture
def experiments_config() -> ExperimentsConfig:
    return ExperimentsConfig.from_mapping(
        {
            "experiments": {
                "/beginners-course/start/": [
                    {"name": "control", "path": "/beginners-course/start/", "weight": 50},
                    {"name": "variant-b", "path": "/beginners-course/start-b/", "weight": 50},
                ]
            }
        }
    )
