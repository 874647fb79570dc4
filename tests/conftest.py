"""Shared test fixtures for the docsfetcher test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from docsfetcher.config import CacheSettings, RetrySettings, Settings

if TYPE_CHECKING:
    from pathlib import Path

SAMPLE_HTML = """<!doctype html>
<html>
<head>
  <title> React Reference </title>
  <meta name="description" content="API reference for React">
  <meta name="keywords" content="react, hooks , components,">
  <style>body { color: red; }</style>
  <script>window.analytics = true;</script>
</head>
<body>
  <h1>useState</h1>
  <h2>Reference</h2>
  <h2>  </h2>
  <p>useState is a React Hook that lets you add a state variable to your component.</p>
  <pre><code>const [state, setState] = useState(initialState);</code></pre>
  <a href="/reference/react/useEffect">useEffect</a>
  <a href="#usage">Usage</a>
  <a href="javascript:void(0)">noop</a>
  <a href="https://react.dev/reference/react-dom/api">react-dom API</a>
</body>
</html>
"""


@pytest.fixture()
def sample_html() -> str:
    return SAMPLE_HTML


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary directory, with retries disabled."""
    return Settings(
        cache=CacheSettings(dir=str(tmp_path / "artifacts")),
        retry=RetrySettings(max_attempts=1, jitter=False),
    )
