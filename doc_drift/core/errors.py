"""Exceptions raised by doc_drift operations."""


class DocDriftError(Exception):
    """Base class for doc_drift errors."""


class ProjectRootNotFoundError(DocDriftError):
    """The project root passed to snapshot creation does not exist."""

    def __init__(self, project_root: str):
        super().__init__(f"Project root not found: {project_root}")
        self.project_root = project_root
