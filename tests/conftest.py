"""Shared fixtures: fake providers and a fresh index per test.

The fakes implement the provider protocols directly, so no test needs
network access or a real API key.
"""
import os
from types import SimpleNamespace

import pytest

from ragcore.exceptions import EmbeddingFailure, GenerationFailure
from ragcore.generator import GenerationResult
from ragcore.vector_store import InMemorySimilarityIndex


def pytest_configure(config):
    """Dummy key so settings-backed constructors work during collection."""
    os.environ.setdefault("OPENAI_API_KEY", "sk-test-dummy-for-tests")


class FakeEmbedder:
    """Returns preset vectors by text; unknown text gets ``default``."""

    model = "fake-embedding"

    def __init__(self, vectors=None, default=(1.0, 0.0), fail=False):
        self.vectors = dict(vectors or {})
        self.default = list(default)
        self.fail = fail
        self.calls = []

    def embed(self, text):
        self.calls.append(text)
        if self.fail:
            raise EmbeddingFailure("embedding service unavailable")
        return list(self.vectors.get(text, self.default))


class FakeGenerator:
    """Records every prompt and answers with a canned reply."""

    def __init__(self, reply="fake answer", tokens_used=42, fail=False):
        self.reply = reply
        self.tokens_used = tokens_used
        self.fail = fail
        self.calls = []

    def generate(self, prompt, model):
        self.calls.append((prompt, model))
        if self.fail:
            raise GenerationFailure("chat service unavailable")
        return GenerationResult(text=self.reply, tokens_used=self.tokens_used, model=model)


@pytest.fixture
def index():
    return InMemorySimilarityIndex()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def generator():
    return FakeGenerator()


def make_openai_client(embedding=None, reply="hello", total_tokens=7, error=None):
    """Minimal stand-in for ``openai.OpenAI`` covering the calls we make."""
    calls = {"embeddings": [], "chat": [], "models": 0, "closed": False}

    def create_embedding(**kwargs):
        calls["embeddings"].append(kwargs)
        if error is not None:
            raise error
        return SimpleNamespace(
            data=[SimpleNamespace(embedding=list(embedding or [0.1, 0.2, 0.3]))],
            usage=SimpleNamespace(total_tokens=total_tokens),
        )

    def create_chat(**kwargs):
        calls["chat"].append(kwargs)
        if error is not None:
            raise error
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=reply))],
            usage=SimpleNamespace(total_tokens=total_tokens),
        )

    def list_models():
        calls["models"] += 1
        if error is not None:
            raise error
        return []

    def close():
        calls["closed"] = True

    client = SimpleNamespace(
        embeddings=SimpleNamespace(create=create_embedding),
        chat=SimpleNamespace(completions=SimpleNamespace(create=create_chat)),
        models=SimpleNamespace(list=list_models),
        close=close,
    )
    return client, calls
