from pathlib import Path

import pytest

from listing_optimizer.libs import config, llm
from listing_optimizer.libs.models import RawListing, RewriteResult

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def load_fixture():
    def _load(name: str) -> str:
        return (FIXTURES_DIR / name).read_text(encoding="utf-8")
    return _load


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep a developer .env from leaking into tests and start each test without an LLM client."""
    monkeypatch.setattr(config, "_ENV_LOADED", True)
    llm.reset_client()
    yield
    llm.reset_client()


@pytest.fixture
def sqlite_db(tmp_path, monkeypatch):
    db_path = tmp_path / "optimizations.sqlite3"
    monkeypatch.setenv("STORAGE_BACKEND", "sqlite")
    monkeypatch.setenv("SQLITE_PATH", str(db_path))
    monkeypatch.delenv("DATABASE_URL", raising=False)
    return db_path


@pytest.fixture
def listing() -> RawListing:
    return RawListing(
        asin="B0ABCDEFGH",
        title="Widget Pro 3000 Stainless Steel Kitchen Scale",
        bullets=(
            "Precise readings from 1 g up to 10 kg with a high-accuracy sensor",
            "Tare function lets you weigh ingredients in any bowl",
        ),
        description="The Widget Pro 3000 brings laboratory precision to your kitchen counter.",
    )


@pytest.fixture
def rewrite() -> RewriteResult:
    return RewriteResult(
        optimized_title="Widget Pro 3000 Digital Kitchen Scale - Stainless Steel Food Scale with Tare and Backlit LCD",
        optimized_bullets=(
            "PRECISE MEASUREMENT: 1 g to 10 kg range for baking, meal prep and portion control",
            "TARE FUNCTION: zero out any bowl or container to weigh only the ingredients",
            "EASY TO READ: backlit LCD display stays clear in any kitchen lighting",
            "BATTERY SAVING: automatic shut-off after two minutes of inactivity",
            "EASY CLEANING: brushed stainless steel platform wipes clean in seconds",
        ),
        optimized_description=(
            "Bring consistent results to every recipe with the Widget Pro 3000 digital kitchen scale. "
            "A high-accuracy sensor reads from 1 g up to 10 kg, the tare button lets you weigh straight "
            "into any bowl, and the backlit display stays readable in low light. The slim stainless "
            "steel platform wipes clean in seconds and slides into any drawer."
        ),
        suggested_keywords=(
            "digital kitchen scale",
            "food scale grams",
            "stainless steel kitchen scale",
            "baking scale with tare",
            "backlit lcd scale",
        ),
    )
