import asyncio

import pytest

from doc_drift.core.structural_analyzer import StructuralAnalyzer


def test_typescript_file_model(analyzer, ts_project):
    model = analyzer.analyze_file(ts_project / "src" / "math.ts")

    assert model is not None
    assert model.file_path == "src/math.ts"
    assert model.language == "typescript"
    assert [f.name for f in model.functions] == ["calculate", "add"]
    assert model.exports == ["calculate", "add"]

    calculate = model.functions[0]
    assert calculate.signature == "calculate(x: number): number"
    assert calculate.return_type == "number"
    assert [(p.name, p.type, p.optional) for p in calculate.parameters] == [("x", "number", False)]
    assert calculate.is_exported
    assert calculate.dependencies == ["clamp"]
    assert calculate.line_start == 3

    assert model.imports[0].source == "./helper"
    assert [name.name for name in model.imports[0].names] == ["clamp"]
    assert model.content_hash


def test_typescript_complexity_counts_branches(analyzer, ts_project):
    helper = analyzer.analyze_file(ts_project / "src" / "helper.ts")
    math = analyzer.analyze_file(ts_project / "src" / "math.ts")

    assert helper.complexity == 2
    assert helper.functions[0].complexity == 2
    assert math.complexity == 1


def test_typescript_classes_types_and_private_members(analyzer, write_file):
    path = write_file("src/shapes.ts", '''/** A shape. */
export interface Shape {
  area(): number;
}

export type Id = string;

export class Circle implements Shape {
  constructor(private radius: number) {}

  area(): number {
    return Math.PI * this.radius * this.radius;
  }

  private scale(factor?: number): void {}
}

const helper = (value: number) => value * 2;
''')
    model = analyzer.analyze_file(path)

    assert [t.name for t in model.types] == ["Shape", "Id"]
    assert model.types[0].has_doc_comment
    assert [c.name for c in model.classes] == ["Circle"]
    assert "implements Shape" in model.classes[0].signature

    methods = {f.qualified_name: f for f in model.functions if f.class_name}
    assert methods["Circle.area"].is_exported
    assert not methods["Circle.scale"].is_exported
    assert methods["Circle.scale"].parameters[0].optional

    helper = next(f for f in model.functions if f.name == "helper")
    assert not helper.is_exported
    assert "helper" not in model.exports
    assert set(model.exports) == {"Shape", "Id", "Circle"}


def test_python_file_model(analyzer, write_file):
    path = write_file("lib/service.py", '''"""Service module."""
from typing import Optional


async def fetch(url: str, retries: int = 3) -> Optional[str]:
    """Fetch a URL."""
    if retries > 0 and url:
        return download(url)
    return None


def _private():
    pass


class Client(Base):
    def get(self, key):
        return self.fetch(key)

    def _hidden(self):
        pass
''')
    model = analyzer.analyze_file(path)

    fetch = next(f for f in model.functions if f.name == "fetch")
    assert fetch.is_async
    assert fetch.signature == "async fetch(url: str, retries: int = 3) -> Optional[str]"
    assert [p.optional for p in fetch.parameters] == [False, True]
    assert fetch.parameters[1].default == "3"
    assert fetch.has_doc_comment
    assert fetch.dependencies == ["download"]
    assert fetch.complexity == 3

    assert "_private" not in model.exports
    assert set(model.exports) == {"fetch", "Client"}
    assert model.classes[0].signature == "class Client(Base)"

    get = next(f for f in model.functions if f.qualified_name == "Client.get")
    assert [p.name for p in get.parameters] == ["key"]
    assert get.is_exported
    hidden = next(f for f in model.functions if f.qualified_name == "Client._hidden")
    assert not hidden.is_exported


def test_python_dunder_all_controls_exports(analyzer, write_file):
    path = write_file("mod.py", '''__all__ = ["public_one"]


def public_one():
    pass


def public_two():
    pass
''')
    model = analyzer.analyze_file(path)

    assert model.exports == ["public_one"]
    assert not next(f for f in model.functions if f.name == "public_two").is_exported


def test_rust_file_model(analyzer, write_file):
    path = write_file("src/lib.rs", '''use crate::util::{parse, format as fmt};

/// A user record.
pub struct User {
    name: String,
}

impl User {
    pub fn new(name: String) -> Self {
        User { name }
    }

    fn secret(&self) -> bool {
        true
    }
}

pub fn make_user(name: &str, age: Option<u32>) -> User {
    if name.is_empty() {
        panic!("empty");
    }
    User::new(name.to_string())
}
''')
    model = analyzer.analyze_file(path)

    assert [t.name for t in model.types] == ["User"]
    assert model.types[0].is_exported
    assert model.types[0].has_doc_comment

    make_user = next(f for f in model.functions if f.name == "make_user")
    assert make_user.signature == "make_user(name: &str, age: Option<u32>) -> User"
    assert [p.optional for p in make_user.parameters] == [False, True]

    methods = {f.qualified_name: f for f in model.functions if f.class_name}
    assert methods["User.new"].is_exported
    assert not methods["User.secret"].is_exported
    assert set(model.exports) == {"User", "make_user"}

    assert model.imports[0].source == "crate::util"
    assert [(n.name, n.alias) for n in model.imports[0].names] == [("parse", None), ("format", "fmt")]


def test_unsupported_and_unreadable_files_return_none(analyzer, write_file, tmp_path):
    notes = write_file("notes.txt", "plain text")
    broken = tmp_path / "broken.py"
    broken.write_bytes(b"def f():\n    return '\xff\xfe'\n")

    assert analyzer.analyze_file(notes) is None
    assert analyzer.analyze_file(tmp_path / "missing.py") is None
    assert analyzer.analyze_file(broken) is None
    assert analyzer.performance_metrics["failed_files"] == 2


def test_syntax_errors_still_produce_a_model(analyzer, write_file):
    path = write_file("partial.py", "def ok(a):\n    return a\n\ndef broken(:\n")
    model = analyzer.analyze_file(path)

    assert model is not None
    assert model.language == "python"


def test_display_path_outside_project_is_absolute(tmp_path, write_file):
    path = write_file("inner/a.py", "x = 1\n")
    analyzer = StructuralAnalyzer(project_root=tmp_path / "elsewhere")

    assert analyzer.display_path(path) == path.resolve().as_posix()


@pytest.mark.asyncio
async def test_analyze_file_async(analyzer, ts_project):
    model = await analyzer.analyze_file_async(ts_project / "src" / "helper.ts")

    assert model.functions[0].name == "clamp"


@pytest.mark.asyncio
async def test_metrics_are_exact_under_concurrent_analysis(analyzer, write_file, tmp_path):
    paths = [write_file(f"src/mod_{i}.py", f"def f_{i}(x):\n    return x\n") for i in range(40)]
    paths += [tmp_path / f"src/missing_{i}.py" for i in range(10)]

    models = await asyncio.gather(*(analyzer.analyze_file_async(path) for path in paths))

    assert sum(model is not None for model in models) == 40
    assert analyzer.performance_metrics["total_files"] == 50
    assert analyzer.performance_metrics["failed_files"] == 10
    assert analyzer.performance_metrics["total_symbols"] == 40
