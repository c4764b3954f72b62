import pytest

from know.enrichment import EnrichmentConfig


def test_defaults_from_empty_environment(monkeypatch):
    for name in ("WORKER_CONCURRENCY", "EMBEDDING_DIMENSION", "VECTOR_BACKEND", "QUEUE_BACKEND"):
        monkeypatch.delenv(name, raising=False)
    config = EnrichmentConfig.from_env()
    assert config.worker_concurrency == 5
    assert config.embedding_dimension == 768
    assert config.vector_backend == "sqlite-vec"
    assert config.queue_backend == "memory"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("WORKER_CONCURRENCY", "3")
    monkeypatch.setenv("VECTOR_BACKEND", "BLOB")
    monkeypatch.setenv("LLM_PROVIDER", "local")
    monkeypatch.setenv("EMBEDDING_DIMENSION", "64")
    config = EnrichmentConfig.from_env()
    assert config.worker_concurrency == 3
    assert config.vector_backend == "blob"
    assert config.llm_provider == "local"
    assert config.embedding_dimension == 64


@pytest.mark.parametrize(
    "overrides",
    [
        {"vector_backend": "faiss"},
        {"llm_provider": "openai"},
        {"queue_backend": "kafka"},
        {"worker_concurrency": 0},
        {"embedding_dimension": 0},
    ],
)
def test_invalid_values_raise(overrides):
    with pytest.raises(ValueError):
        EnrichmentConfig(**overrides)
