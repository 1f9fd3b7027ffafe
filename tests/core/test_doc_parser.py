import pytest

from doc_drift.core.doc_parser import (
    DocumentationParser,
    build_validation_hints,
    category_from_content,
    category_from_path,
    extract_code_references,
    extract_symbols_from_code,
    split_front_matter,
)


@pytest.fixture
def parser():
    return DocumentationParser()


@pytest.fixture
def api_doc(parser, ts_project):
    content = (ts_project / "docs" / "api.md").read_text(encoding="utf-8")
    return parser.parse_content(content, "docs/api.md")


def test_sections_split_on_headings(api_doc):
    assert [s.title for s in api_doc.sections] == ["Math API", "calculate(x)", "add(a, b)"]
    assert [s.start_line for s in api_doc.sections] == [4, 8, 16]
    assert api_doc.sections[0].end_line == 7


def test_front_matter_sets_category(api_doc):
    assert api_doc.category == "reference"
    assert api_doc.referenced_code == ["../src/math.ts"]
    assert api_doc.content_hash


def test_section_references(api_doc):
    title, calculate, add = api_doc.sections

    assert title.referenced_classes == ["Math"]
    assert calculate.referenced_functions == ["calculate"]
    assert add.referenced_functions == ["add"]
    assert "add(a: number, b: number): number" in add.content


def test_code_examples(api_doc):
    example = api_doc.sections[1].code_examples[0]

    assert example.language == "typescript"
    assert example.code == "const y = calculate(21);"
    assert example.description == "Use `calculate` to double a value."
    assert example.referenced_symbols == ["calculate"]
    assert example.category == "reference"
    assert example.validation_hints.context_required


def test_headings_inside_fences_are_ignored(parser):
    content = "# Real\n\n```bash\n# not a heading\n```\n\n## Second\ntext\n"
    doc = parser.parse_content(content, "README.md")

    assert [s.title for s in doc.sections] == ["Real", "Second"]
    assert doc.sections[0].code_examples[0].language == "bash"


def test_tilde_fences_and_missing_language(parser):
    content = "# Usage\n\n~~~rust\nlet total = compute_total(&items);\n~~~\n\n```\nplain\n```\n"
    examples = parser.parse_content(content, "usage.md").sections[0].code_examples

    assert [e.language for e in examples] == ["rust", "text"]
    assert examples[0].referenced_symbols == ["compute_total"]


def test_qualified_inline_references_are_split(parser):
    content = "# Client\n\nCall `Client.connect` and then `disconnect()`.\n"
    section = parser.parse_content(content, "client.md").sections[0]

    assert section.referenced_classes == ["Client"]
    assert section.referenced_functions == ["connect", "disconnect"]


def test_custom_symbol_classifier(tmp_path):
    parser = DocumentationParser(symbol_classifier=lambda name: "type")
    section = parser.parse_content("# Types\n\nSee `UserId`.\n", "types.md").sections[0]

    assert section.referenced_types == ["Types", "UserId"]
    assert section.referenced_classes == []


def test_category_from_path_and_content(parser):
    assert category_from_path("docs/tutorials/intro.md") == "tutorial"
    assert category_from_path("docs/how-to/deploy.md") == "how-to"
    assert category_from_path("docs/intro.md") is None
    assert category_from_content("Getting started: step 1") == "tutorial"
    assert category_from_content("The architecture of the system") == "explanation"

    doc = parser.parse_content("# Setup\n", "guides/setup.md")
    assert doc.category == "how-to"


def test_section_category_falls_back_to_content(parser):
    content = "# Getting started\n\nIn this tutorial:\n\n```python\nprint('hi')\n```\n"
    doc = parser.parse_content(content, "intro.md")

    assert doc.category is None
    assert doc.sections[0].code_examples[0].category == "tutorial"


def test_split_front_matter():
    data, body, consumed = split_front_matter("---\ntitle: Hello\ndiataxis: how-to\n---\n# Body\n")

    assert data == {"title": "Hello", "diataxis": "how-to"}
    assert body == "# Body\n"
    assert consumed == 4


def test_malformed_or_non_mapping_front_matter_is_ignored(parser):
    assert split_front_matter("---\nkey: [unclosed\n---\n# T\n")[0] == {}
    assert split_front_matter("---\n- a\n- b\n---\n# T\n")[0] == {}
    assert split_front_matter("# No front matter\n") == ({}, "# No front matter\n", 0)

    doc = parser.parse_content("---\nkey: [unclosed\n---\n# T\n", "t.md")
    assert [s.title for s in doc.sections] == ["T"]


def test_extract_code_references():
    content = "See [impl](./src/a.py#L10), `src/b.rs` and [site](https://example.com)."

    assert extract_code_references(content) == ["src/a.py", "src/b.rs"]


def test_extract_symbols_skips_keywords():
    code = "if (ready) {\n  const result = new Parser(options).parse(input);\n}\n"

    assert extract_symbols_from_code(code) == ["parse", "Parser"]


def test_validation_hints_for_self_contained_snippet():
    code = "from mylib import Client\nclient = Client()\nclient.run()"
    hints = build_validation_hints(code, "Output: done")

    assert hints.expected_behavior == "done"
    assert hints.dependencies == ["mylib"]
    assert not hints.context_required


def test_validation_hints_for_snippet_needing_context():
    hints = build_validation_hints("import { a } from './a';\nconst value = transform(a);")

    assert hints.dependencies == ["./a"]
    assert hints.context_required
    assert hints.expected_behavior is None


def test_parse_reads_file_and_mtime(parser, write_file):
    path = write_file("docs/guide.md", "# Guide\n")
    doc = parser.parse(path, "docs/guide.md")

    assert doc.file_path == "docs/guide.md"
    assert doc.last_modified.endswith("Z")


def test_parse_unreadable_file_returns_none(parser, tmp_path):
    bad = tmp_path / "bad.md"
    bad.write_bytes(b"# Title \xff\xfe\n")

    assert parser.parse(tmp_path / "missing.md") is None
    assert parser.parse(bad) is None
