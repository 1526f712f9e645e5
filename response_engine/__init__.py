"""Response parsing & repair engine for model code-generation output.

Public API
----------
Orchestration::

    parse_response, ResponseStream, extract_file_list, has_files,

Contracts (Pydantic models)::

    ParseResult, FileOperation,
    CreateOperation, UpdateOperation, DeleteOperation,
    Patch, SearchReplaceHunk,
    RepairRecord, RepairTrace, OperationError,
    PlanInfo, BatchInfo, MetaInfo, ManifestEntry,
    DetectedFormat, ResponseFormat, FileKind,

Parsers::

    detect, parse_json, parse_marker, parse_fallback,
    StreamCursor, feed, finish, emit_marker_block,

Repair & reconciliation::

    repair, PASS_NAMES, apply_patch, reconcile,

Truncation recovery::

    RecoveryAction, RecoveryPlan, analyze, continuation_prompt,
    looks_truncated,

Errors::

    EngineError, MalformedJson, UnbalancedBlock,
    PatchError, PatchNotFound, PatchAmbiguous,
    RepairImpossible, NoOperationsFound, ResponseTooLarge,

Configuration::

    Settings, settings
"""

from response_engine.config import Settings, settings
from response_engine.contracts import (
    BatchInfo,
    CreateOperation,
    DeleteOperation,
    DetectedFormat,
    FileKind,
    FileOperation,
    ManifestEntry,
    MetaInfo,
    OperationError,
    ParseResult,
    Patch,
    PlanInfo,
    RepairRecord,
    RepairTrace,
    ResponseFormat,
    SearchReplaceHunk,
    UpdateOperation,
)
from response_engine.detector import detect
from response_engine.engine import ResponseStream, extract_file_list, has_files, parse_response
from response_engine.errors import (
    EngineError,
    MalformedJson,
    NoOperationsFound,
    PatchAmbiguous,
    PatchError,
    PatchNotFound,
    RepairImpossible,
    ResponseTooLarge,
    UnbalancedBlock,
)
from response_engine.fallback_parser import parse_fallback
from response_engine.json_parser import parse_json
from response_engine.marker_parser import (
    StreamCursor,
    emit_marker_block,
    feed,
    finish,
    parse_marker,
)
from response_engine.reconciler import apply_patch, reconcile
from response_engine.recovery import (
    RecoveryAction,
    RecoveryPlan,
    analyze,
    continuation_prompt,
    looks_truncated,
)
from response_engine.repair import PASS_NAMES, repair

__all__ = [
    # Orchestration
    "ResponseStream",
    "extract_file_list",
    "has_files",
    "parse_response",
    # Contracts
    "BatchInfo",
    "CreateOperation",
    "DeleteOperation",
    "DetectedFormat",
    "FileKind",
    "FileOperation",
    "ManifestEntry",
    "MetaInfo",
    "OperationError",
    "ParseResult",
    "Patch",
    "PlanInfo",
    "RepairRecord",
    "RepairTrace",
    "ResponseFormat",
    "SearchReplaceHunk",
    "UpdateOperation",
    # Parsers
    "StreamCursor",
    "detect",
    "emit_marker_block",
    "feed",
    "finish",
    "parse_fallback",
    "parse_json",
    "parse_marker",
    # Repair & reconciliation
    "PASS_NAMES",
    "apply_patch",
    "reconcile",
    "repair",
    # Recovery
    "RecoveryAction",
    "RecoveryPlan",
    "analyze",
    "continuation_prompt",
    "looks_truncated",
    # Errors
    "EngineError",
    "MalformedJson",
    "NoOperationsFound",
    "PatchAmbiguous",
    "PatchError",
    "PatchNotFound",
    "RepairImpossible",
    "ResponseTooLarge",
    "UnbalancedBlock",
    # Configuration
    "Settings",
    "settings",
]
