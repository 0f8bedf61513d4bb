"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages,
and provides shared fakes for the embedding backend and sample Java sources.
"""

import sys
from collections.abc import Sequence
from pathlib import Path

import pytest

# Insert local src directory at the beginning of sys.path
# This ensures that the local coderag package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of coderag modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("coderag"):
        del sys.modules[module_name]

from coderag.backends.vectorstore import InMemoryVectorStore  # noqa: E402
from coderag.index._internal.parsing.segmenter import JavaSegmenter  # noqa: E402

ORDER_SOURCE = """\
package com.acme.shop;

import java.util.List;
import java.util.Map;

/**
 * An order.
 */
@Entity
public class Order implements Comparable<Order>, Serializable {
    private static final int MAX = 10;
    private int a, b;

    static {
        System.out.println("init");
    }

    {
        counter++;
    }

    public Order(int a) {
        this.a = a;
    }

    /** Total. */
    @Override
    public int compareTo(Order other) throws IllegalStateException {
        return a - other.a;
    }

    public static class Line {
        String sku;
    }

    enum Status {
        OPEN("o"), CLOSED("c");

        private final String code;

        Status(String code) { this.code = code; }
    }
}
"""

MODULE_SOURCE = """\
module com.acme.app {
    requires java.sql;
    exports com.acme.api;
}
"""

BROKEN_SOURCE = "public class Broken { void x( }\n"

COMMENT_ONLY_SOURCE = "// nothing here\n/* still nothing */\n"


def simple_class(name: str, package: str = "com.acme") -> str:
    return f"package {package};\n\npublic class {name} {{\n    public int value() {{\n        return 1;\n    }}\n}}\n"


class FakeEmbeddingGateway:
    """Deterministic embeddings. Texts containing a ``fail_marker`` get no vector."""

    def __init__(self, fail_markers: Sequence[str] = (), drop_last: bool = False) -> None:
        self.fail_markers = tuple(fail_markers)
        self.drop_last = drop_last
        self.calls: list[list[str]] = []

    def _vector(self, text: str) -> list[float]:
        return [float(len(text) % 13 + 1), float(text.count("\n") + 1), 1.0]

    def embed(self, text: str) -> list[float]:
        return self._vector(text)

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        vectors = [[] if any(m in t for m in self.fail_markers) else self._vector(t) for t in texts]
        if self.drop_last and vectors:
            vectors.pop()
        return vectors


@pytest.fixture
def fake_gateway() -> FakeEmbeddingGateway:
    return FakeEmbeddingGateway()


@pytest.fixture
def memory_store() -> InMemoryVectorStore:
    store = InMemoryVectorStore()
    store.ensure_collection("code")
    return store


@pytest.fixture
def segmenter() -> JavaSegmenter:
    return JavaSegmenter(max_segment_length=2000, overlap_chars=100)


@pytest.fixture
def java_tree(tmp_path: Path) -> Path:
    """A small source tree with excluded and ineligible files mixed in."""
    root = tmp_path / "project"
    src = root / "src" / "main" / "java" / "com" / "acme"
    src.mkdir(parents=True)
    (src / "Order.java").write_text(ORDER_SOURCE)
    (src / "Customer.java").write_text(simple_class("Customer"))
    (src / "CustomerTest.java").write_text(simple_class("CustomerTest"))
    (src / "README.md").write_text("# docs\n")

    build = root / "target" / "classes"
    build.mkdir(parents=True)
    (build / "Stale.java").write_text(simple_class("Stale"))

    hidden = root / ".idea"
    hidden.mkdir()
    (hidden / "Workspace.java").write_text(simple_class("Workspace"))
    return root
