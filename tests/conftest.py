import os
import sys

# Offline, deterministic backends; must be set before fair_charge.config is imported
os.environ["EMBEDDING_BACKEND"] = "hashing"
os.environ["COMPLETION_BACKEND"] = "none"
os.environ["RULE_INDEX_PATH"] = ""
os.environ["SENTRY_DSN"] = ""

# Ensure the `src/` directory is on sys.path so we can import `fair_charge` package
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(PROJECT_ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

import pytest  # noqa: E402

from fair_charge import config  # noqa: E402
from fair_charge.pipeline import build_pipeline  # noqa: E402
from fair_charge.retrieval.embeddings import HashingEmbedder  # noqa: E402
from fair_charge.rules.store import RuleStore  # noqa: E402


@pytest.fixture
def store():
    return RuleStore.from_yaml(config.RULES_PATH)


@pytest.fixture
def pipeline(store):
    p = build_pipeline(store=store, embedder=HashingEmbedder(), index_path=None, timeout=10.0)
    yield p
    p.close()


@pytest.fixture
def mrp_overcharge():
    return {"chargeType": "mrp", "products": [{"name": "Soap", "price": 50, "mrp": 45}]}
