"""
Drift detection between two project snapshots.

For every source file whose structure changed, symbol-level deltas are
computed, classified by impact, correlated with documentation sections that
reference the changed symbols, and turned into drift records and advisory
rewrite suggestions.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Dict, List, Optional, Tuple

from .models import (
    CodeDelta,
    DocumentationModel,
    DocumentationSection,
    DriftDetectionResult,
    DriftRecord,
    DriftSuggestion,
    DriftType,
    FileModel,
    ImpactLevel,
    ImpactSummary,
    OverallSeverity,
    Severity,
    Snapshot,
    SymbolInfo,
)
from .treesitter import FENCE_TAGS
from .utils import utc_now_iso

IMPACT_SEVERITY: Dict[str, Severity] = {
    "patch": "low",
    "minor": "medium",
    "major": "high",
    "breaking": "critical",
}
SEVERITY_RANK: Dict[str, int] = {"none": 0, "low": 1, "medium": 2, "high": 3, "critical": 4}

REMOVAL_CONFIDENCE = 0.8
ADDITION_CONFIDENCE = 0.6
MODIFICATION_CONFIDENCE = 0.7

SymbolKey = Tuple[str, str]  # (kind, qualified name)


def impact_to_severity(impact: ImpactLevel) -> Severity:
    return IMPACT_SEVERITY[impact]


def drift_type_for(delta: CodeDelta) -> DriftType:
    if delta.impact_level == "breaking":
        return "breaking"
    if delta.change_type == "removed":
        return "incorrect"
    if delta.change_type == "modified":
        return "outdated"
    return "missing"


def _symbol_map(model: FileModel) -> Dict[SymbolKey, SymbolInfo]:
    return {(symbol.kind, symbol.qualified_name): symbol for symbol in model.all_symbols()}


def _symbol_fingerprint(model: FileModel) -> List[tuple]:
    return sorted(
        (
            symbol.kind,
            symbol.qualified_name,
            symbol.signature,
            symbol.is_exported,
            tuple(symbol.dependencies),
        )
        for symbol in model.all_symbols()
    )


def compare_symbols(old: SymbolInfo, new: SymbolInfo) -> List[str]:
    """Human-readable list of differences between two versions of a symbol."""
    changes: List[str] = []
    if old.kind == "function":
        if len(old.parameters) != len(new.parameters):
            changes.append(f"Parameter count changed from {len(old.parameters)} to {len(new.parameters)}")
        else:
            for old_param, new_param in zip(old.parameters, new.parameters):
                if old_param.type != new_param.type:
                    changes.append(
                        f"Parameter '{new_param.name}' type changed from "
                        f"'{old_param.type or 'any'}' to '{new_param.type or 'any'}'"
                    )
                elif old_param.name != new_param.name:
                    changes.append(f"Parameter '{old_param.name}' renamed to '{new_param.name}'")
        if old.return_type != new.return_type:
            changes.append(f"Return type changed from '{old.return_type or 'void'}' to '{new.return_type or 'void'}'")
        if old.is_async != new.is_async:
            changes.append("Function became async" if new.is_async else "Function is no longer async")
    elif old.signature != new.signature:
        changes.append(f"{old.kind.capitalize()} definition changed")

    label = old.kind.capitalize()
    if old.is_exported and not new.is_exported:
        changes.append(f"{label} is no longer exported")
    elif new.is_exported and not old.is_exported:
        changes.append(f"{label} is now exported")
    if not changes and old.signature != new.signature:
        changes.append("Signature changed")
    if old.dependencies != new.dependencies:
        changes.append("Dependencies changed")
    return changes


def determine_impact(old: SymbolInfo, new: SymbolInfo) -> ImpactLevel:
    """
    Impact of a modification.

    Losing the export is a removal from the public surface. Parameter count
    or return type changes on exported functions are major, unless the only
    change is trailing optional parameters. A parameter type change with the
    same count is minor. Everything else is a patch.
    """
    if old.is_exported and not new.is_exported:
        return "breaking"
    if not old.is_exported or old.kind != "function":
        return "patch"

    if len(old.parameters) != len(new.parameters):
        shared = min(len(old.parameters), len(new.parameters))
        only_optional_added = (
            len(new.parameters) > len(old.parameters)
            and old.parameters == new.parameters[:shared]
            and all(param.optional for param in new.parameters[shared:])
        )
        if not only_optional_added:
            return "major"
    elif any(a.type != b.type for a, b in zip(old.parameters, new.parameters)):
        if old.return_type != new.return_type:
            return "major"
        return "minor"

    if old.return_type != new.return_type:
        return "major"
    return "patch"


def compute_deltas(old: FileModel, new: FileModel) -> List[CodeDelta]:
    """Symbol-set difference between two versions of a file."""
    old_symbols = _symbol_map(old)
    new_symbols = _symbol_map(new)
    deltas: List[CodeDelta] = []

    for key, symbol in old_symbols.items():
        if key in new_symbols:
            continue
        deltas.append(
            CodeDelta(
                change_type="removed",
                category=symbol.kind,
                name=symbol.qualified_name,
                details=f"{symbol.kind.capitalize()} '{symbol.qualified_name}' was removed",
                impact_level="breaking" if symbol.is_exported else "patch",
                old_signature=symbol.signature,
                is_exported=symbol.is_exported,
            )
        )

    for key, symbol in new_symbols.items():
        if key in old_symbols:
            continue
        deltas.append(
            CodeDelta(
                change_type="added",
                category=symbol.kind,
                name=symbol.qualified_name,
                details=f"{symbol.kind.capitalize()} '{symbol.qualified_name}' was added",
                impact_level="patch",
                new_signature=symbol.signature,
                is_exported=symbol.is_exported,
            )
        )

    for key, new_symbol in new_symbols.items():
        old_symbol = old_symbols.get(key)
        if old_symbol is None:
            continue
        if (
            old_symbol.signature == new_symbol.signature
            and old_symbol.dependencies == new_symbol.dependencies
            and old_symbol.is_exported == new_symbol.is_exported
        ):
            continue
        deltas.append(
            CodeDelta(
                change_type="modified",
                category=new_symbol.kind,
                name=new_symbol.qualified_name,
                details="; ".join(compare_symbols(old_symbol, new_symbol)),
                impact_level=determine_impact(old_symbol, new_symbol),
                old_signature=old_symbol.signature,
                new_signature=new_symbol.signature,
                is_exported=old_symbol.is_exported or new_symbol.is_exported,
            )
        )

    return deltas


def section_references(section: DocumentationSection, delta: CodeDelta) -> bool:
    """Whether ``section`` mentions the symbol of ``delta`` (qualified or simple name)."""
    names = {delta.name, delta.name.rsplit(".", 1)[-1]}
    if delta.category == "function":
        candidates = section.referenced_functions
    else:
        candidates = [*section.referenced_classes, *section.referenced_types]
    return any(name in candidates for name in names)


def references_file(doc: DocumentationModel, file_path: str) -> bool:
    for reference in doc.referenced_code:
        if reference == file_path or file_path.endswith("/" + reference) or reference.endswith("/" + file_path):
            return True
    return False


class DriftDetector:
    """Compares two snapshots and reports documentation drift per source file."""

    def __init__(self, clock: Optional[Callable[[], str]] = None):
        self.clock = clock or utc_now_iso

    def detect_drift(self, old: Snapshot, new: Snapshot) -> List[DriftDetectionResult]:
        """
        Drift results for every source file whose symbols changed, in file-path order.

        Files present in only one snapshot are compared against an empty model.
        """
        results: List[DriftDetectionResult] = []
        for file_path in sorted(set(old.files) | set(new.files)):
            old_model = old.files.get(file_path)
            new_model = new.files.get(file_path)
            language = (new_model or old_model).language
            old_model = old_model or FileModel(file_path=file_path, language=language)
            new_model = new_model or FileModel(file_path=file_path, language=language)

            if self.is_unchanged(old_model, new_model):
                continue
            deltas = compute_deltas(old_model, new_model)
            if not deltas:
                continue
            results.append(self.analyze_file(file_path, language, deltas, new))

        logging.info(f"Detected drift in {len(results)} of {len(set(old.files) | set(new.files))} files")
        return results

    @staticmethod
    def is_unchanged(old: FileModel, new: FileModel) -> bool:
        if old.content_hash and old.content_hash == new.content_hash:
            return True
        return _symbol_fingerprint(old) == _symbol_fingerprint(new)

    def analyze_file(
        self,
        file_path: str,
        language: str,
        deltas: List[CodeDelta],
        snapshot: Snapshot,
    ) -> DriftDetectionResult:
        affected_docs = self.find_affected_docs(file_path, deltas, snapshot.documentation)
        detected_at = self.clock()

        drifts = [
            DriftRecord(
                drift_type=drift_type_for(delta),
                affected_docs=list(affected_docs),
                code_changes=[delta],
                description=f"{delta.category} '{delta.name}' was {delta.change_type}: {delta.details}",
                detected_at=detected_at,
                severity=impact_to_severity(delta.impact_level),
            )
            for delta in deltas
        ]

        suggestions: List[DriftSuggestion] = []
        for delta in deltas:
            for doc_path in affected_docs:
                doc = snapshot.documentation.get(doc_path)
                if doc is None:
                    continue
                for section in doc.sections:
                    if section_references(section, delta):
                        suggestions.append(self.build_suggestion(doc, section, delta, language))

        severity: OverallSeverity = "none"
        for record in drifts:
            if SEVERITY_RANK[record.severity] > SEVERITY_RANK[severity]:
                severity = record.severity

        return DriftDetectionResult(
            file_path=file_path,
            has_drift=bool(drifts),
            severity=severity,
            drifts=drifts,
            suggestions=suggestions,
            impact_analysis=self.summarize_impact(deltas, drifts, affected_docs),
        )

    @staticmethod
    def find_affected_docs(
        file_path: str,
        deltas: List[CodeDelta],
        documentation: Dict[str, DocumentationModel],
    ) -> List[str]:
        affected = []
        for doc_path, doc in documentation.items():
            if references_file(doc, file_path) or any(
                section_references(section, delta) for section in doc.sections for delta in deltas
            ):
                affected.append(doc_path)
        return sorted(affected)

    @staticmethod
    def summarize_impact(deltas: List[CodeDelta], drifts: List[DriftRecord], affected_docs: List[str]) -> ImpactSummary:
        breaking = sum(1 for d in deltas if d.impact_level == "breaking")
        major = sum(1 for d in deltas if d.impact_level == "major")
        minor = sum(1 for d in deltas if d.impact_level == "minor")
        critical_records = sum(1 for r in drifts if r.severity == "critical")
        high_records = sum(1 for r in drifts if r.severity == "high")

        if critical_records > 0 or high_records > 5:
            effort = "high"
        elif high_records > 0 or len(drifts) > 10:
            effort = "medium"
        else:
            effort = "low"

        return ImpactSummary(
            breaking_changes=breaking,
            major_changes=major,
            minor_changes=minor,
            affected_doc_files=list(affected_docs),
            estimated_update_effort=effort,
            requires_manual_review=breaking > 0 or major > 3,
        )

    # --- Suggestions ---

    def build_suggestion(
        self,
        doc: DocumentationModel,
        section: DocumentationSection,
        delta: CodeDelta,
        language: str,
    ) -> DriftSuggestion:
        auto_applicable = False
        if delta.change_type == "removed":
            reasoning = (
                f"The {delta.category} '{delta.name}' has been removed from the codebase. "
                f"This section should be updated or removed."
            )
            suggested = self._removal_content(section, delta)
            confidence = REMOVAL_CONFIDENCE
        elif delta.change_type == "added":
            reasoning = f"A new {delta.category} '{delta.name}' has been added. Consider documenting it."
            suggested = self._addition_content(section, delta, language)
            confidence = ADDITION_CONFIDENCE
        elif delta.change_type == "modified":
            reasoning = f"The {delta.category} '{delta.name}' has been modified: {delta.details}"
            suggested = self._modification_content(section, delta)
            confidence = MODIFICATION_CONFIDENCE
            auto_applicable = delta.impact_level == "patch"
        else:
            raise ValueError(f"Unknown change type: {delta.change_type}")

        return DriftSuggestion(
            doc_file=doc.file_path,
            section=section.title,
            current_content=section.content,
            suggested_content=suggested,
            reasoning=reasoning,
            confidence=confidence,
            auto_applicable=auto_applicable,
        )

    @staticmethod
    def _removal_content(section: DocumentationSection, delta: CodeDelta) -> str:
        name = delta.name.rsplit(".", 1)[-1]
        content = re.sub(rf"(?<![\w~]){re.escape(name)}(?![\w~])", f"~~{name}~~ (removed)", section.content)
        notice = f"\n\n> **Note**: The `{delta.name}` {delta.category} has been removed in the latest version.\n"
        return notice + content

    @staticmethod
    def _addition_content(section: DocumentationSection, delta: CodeDelta, language: str) -> str:
        addition = f"\n\n## {delta.name}\n\nA new {delta.category} has been added.\n\n"
        if delta.new_signature:
            fence = FENCE_TAGS.get(language, language)
            addition += f"```{fence}\n{delta.new_signature}\n```\n"
        else:
            addition += f"> **Documentation needed**: Please document the `{delta.name}` {delta.category}.\n"
        return section.content + addition

    @staticmethod
    def _modification_content(section: DocumentationSection, delta: CodeDelta) -> str:
        content = section.content
        if delta.old_signature and delta.new_signature:
            content = content.replace(delta.old_signature, delta.new_signature)
        return f"\n\n> **Updated**: {delta.details}\n" + content
