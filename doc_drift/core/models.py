"""
Core data models for documentation drift detection.

This module contains pure data structures for structural code models,
parsed documentation, snapshots and drift results, without behaviour
beyond small derived properties.
"""

from typing import List, Dict, Optional, Literal, Tuple
from dataclasses import dataclass, field

SymbolKind = Literal["function", "class", "type"]
ChangeType = Literal["added", "removed", "modified"]
ImpactLevel = Literal["breaking", "major", "minor", "patch"]
DriftType = Literal["outdated", "incorrect", "missing", "breaking"]
Severity = Literal["low", "medium", "high", "critical"]
OverallSeverity = Literal["none", "low", "medium", "high", "critical"]
Recommendation = Literal["low", "medium", "high", "critical"]
EffortEstimate = Literal["low", "medium", "high"]
DiataxisCategory = Literal["tutorial", "how-to", "reference", "explanation"]


# --- Structural code model ---

@dataclass(frozen=True)
class ParameterInfo:
    name: str
    type: Optional[str] = None
    optional: bool = False
    default: Optional[str] = None


@dataclass(frozen=True)
class SymbolInfo:
    """A function, class or type declaration extracted from a source file."""
    name: str
    kind: SymbolKind
    file_path: str
    signature: str
    parameters: List[ParameterInfo] = field(default_factory=list)
    return_type: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)  # names referenced in the body
    is_exported: bool = False
    has_doc_comment: bool = False
    is_async: bool = False
    class_name: Optional[str] = None  # set for methods
    line_start: int = 0
    line_end: int = 0
    complexity: int = 1
    hash_body: Optional[str] = None

    @property
    def qualified_name(self) -> str:
        if self.class_name:
            return f"{self.class_name}.{self.name}"
        return self.name


@dataclass(frozen=True)
class ImportedName:
    name: str
    alias: Optional[str] = None

    @property
    def local_name(self) -> str:
        return self.alias or self.name


@dataclass(frozen=True)
class ImportInfo:
    source: str
    names: List[ImportedName] = field(default_factory=list)
    is_default: bool = False
    is_namespace: bool = False  # `import * as ns`, `import pkg.mod`
    line: int = 0


@dataclass(frozen=True)
class FileModel:
    """Structural model of one analyzed source file."""
    file_path: str
    language: str
    functions: List[SymbolInfo] = field(default_factory=list)
    classes: List[SymbolInfo] = field(default_factory=list)
    types: List[SymbolInfo] = field(default_factory=list)
    exports: List[str] = field(default_factory=list)
    imports: List[ImportInfo] = field(default_factory=list)
    complexity: int = 1
    content_hash: str = ""
    lines_of_code: int = 0

    def all_symbols(self) -> List[SymbolInfo]:
        return [*self.functions, *self.classes, *self.types]


# --- Documentation model ---

@dataclass(frozen=True)
class ValidationHints:
    expected_behavior: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)
    context_required: bool = False


@dataclass(frozen=True)
class CodeExample:
    language: str
    code: str
    description: str = ""
    referenced_symbols: List[str] = field(default_factory=list)
    category: Optional[DiataxisCategory] = None
    validation_hints: Optional[ValidationHints] = None


@dataclass(frozen=True)
class DocumentationSection:
    title: str
    content: str
    start_line: int
    end_line: int
    referenced_functions: List[str] = field(default_factory=list)
    referenced_classes: List[str] = field(default_factory=list)
    referenced_types: List[str] = field(default_factory=list)
    code_examples: List[CodeExample] = field(default_factory=list)

    def references(self) -> List[str]:
        return [*self.referenced_functions, *self.referenced_classes, *self.referenced_types]


@dataclass(frozen=True)
class DocumentationModel:
    file_path: str
    content_hash: str
    referenced_code: List[str] = field(default_factory=list)
    last_modified: str = ""  # ISO-8601 UTC
    category: Optional[DiataxisCategory] = None
    sections: List[DocumentationSection] = field(default_factory=list)


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time structural model of a project. Compared, never merged."""
    project_root: str
    timestamp: str
    files: Dict[str, FileModel] = field(default_factory=dict)
    documentation: Dict[str, DocumentationModel] = field(default_factory=dict)


# --- Drift results ---

@dataclass
class CodeDelta:
    change_type: ChangeType
    category: SymbolKind
    name: str
    details: str
    impact_level: ImpactLevel
    old_signature: Optional[str] = None
    new_signature: Optional[str] = None
    is_exported: bool = False


@dataclass
class DriftRecord:
    drift_type: DriftType
    affected_docs: List[str]
    code_changes: List[CodeDelta]
    description: str
    detected_at: str
    severity: Severity


@dataclass
class DriftSuggestion:
    doc_file: str
    section: str
    current_content: str
    suggested_content: str
    reasoning: str
    confidence: float
    auto_applicable: bool = False


@dataclass
class ImpactSummary:
    breaking_changes: int = 0
    major_changes: int = 0
    minor_changes: int = 0
    affected_doc_files: List[str] = field(default_factory=list)
    estimated_update_effort: EffortEstimate = "low"
    requires_manual_review: bool = False


@dataclass
class DriftDetectionResult:
    file_path: str
    has_drift: bool
    severity: OverallSeverity
    drifts: List[DriftRecord] = field(default_factory=list)
    suggestions: List[DriftSuggestion] = field(default_factory=list)
    impact_analysis: ImpactSummary = field(default_factory=ImpactSummary)


# --- Prioritization ---

@dataclass
class PriorityFactors:
    code_complexity: int = 0
    usage_frequency: int = 0
    change_magnitude: int = 0
    documentation_coverage: int = 0
    staleness: int = 0
    user_feedback: int = 0


@dataclass
class PriorityScore:
    overall: int
    factors: PriorityFactors
    recommendation: Recommendation
    suggested_action: str


@dataclass
class PrioritizedDriftResult:
    result: DriftDetectionResult
    priority_score: PriorityScore

    @property
    def file_path(self) -> str:
        return self.result.file_path


@dataclass
class UsageMetadata:
    file_path: str
    function_calls: Dict[str, int] = field(default_factory=dict)
    class_instantiations: Dict[str, int] = field(default_factory=dict)
    imports: Dict[str, int] = field(default_factory=dict)

    def count_for(self, name: str) -> int:
        return (
            self.function_calls.get(name, 0)
            + self.class_instantiations.get(name, 0)
            + self.imports.get(name, 0)
        )


# --- Call graph enrichment records ---

@dataclass
class ConditionalBranch:
    kind: str  # if | elif | else | case | ternary
    condition: str
    line: int
    calls: List[str] = field(default_factory=list)


@dataclass
class ExceptionPath:
    exception_type: str
    line: int
    is_caught: bool  # True for except/catch, False for raise/throw


@dataclass
class CallSite:
    callee: str
    line: int
    is_constructor: bool = False


Edge = Tuple[int, int]
