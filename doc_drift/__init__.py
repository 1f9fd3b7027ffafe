"""Documentation drift detection for Python, TypeScript/JavaScript and Rust projects."""

__version__ = "0.1.0"
