"""
Pytest configuration and fixtures for doc_drift core tests.
"""

import pytest
from pathlib import Path
from typing import Callable

from doc_drift.core.structural_analyzer import StructuralAnalyzer


MATH_TS = '''import { clamp } from "./helper";

export function calculate(x: number): number {
  return clamp(x * 2);
}

export function add(a: number, b: number): number {
  return a + b;
}
'''

HELPER_TS = '''export function clamp(value: number): number {
  if (value > 100) {
    return 100;
  }
  return value;
}
'''

API_MD = '''---
category: reference
---
# Math API

See [math](../src/math.ts) for the implementation.

## calculate(x)

Use `calculate` to double a value.

```typescript
const y = calculate(21);
```

## add(a, b)

`add(a, b)` returns the sum: add(a: number, b: number): number
'''


@pytest.fixture
def write_file(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write a file relative to the temporary project root."""
    def _write(relative: str, content: str) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path
    return _write


@pytest.fixture
def analyzer(tmp_path: Path) -> StructuralAnalyzer:
    """StructuralAnalyzer rooted at the temporary project."""
    return StructuralAnalyzer(project_root=tmp_path)


@pytest.fixture
def ts_project(tmp_path: Path, write_file) -> Path:
    """A small TypeScript project with one reference document."""
    write_file("src/math.ts", MATH_TS)
    write_file("src/helper.ts", HELPER_TS)
    write_file("docs/api.md", API_MD)
    return tmp_path


@pytest.fixture
def python_project(tmp_path: Path, write_file) -> Path:
    """A Python package with cross-module calls, branches and a call cycle."""
    write_file("pkg/__init__.py", "")
    write_file("pkg/main.py", '''from .helpers import normalize
from . import helpers


def entry(value):
    if value > 10:
        result = normalize(value)
    else:
        result = helpers.scale(value)
    try:
        process(result)
    except ValueError:
        raise RuntimeError("bad value")
    return result


def process(x):
    return unknown_call(x)


def ping(n):
    return pong(n - 1)


def pong(n):
    return ping(n - 1)


class Greeter:
    def greet(self, name):
        return self.format_name(name)

    def format_name(self, name):
        return name.title()
''')
    write_file("pkg/helpers.py", '''def normalize(v):
    return scale(v) / 2


def scale(v):
    return v * 3
''')
    return tmp_path
