"""Retrieval channels and rank fusion."""

import importlib.util


def semantic_deps_available() -> bool:
    # Avoid importing heavyweight deps unless needed.
    return (
        importlib.util.find_spec("chromadb") is not None
        and importlib.util.find_spec("sentence_transformers") is not None
    )
