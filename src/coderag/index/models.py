"""Data model for segmentation and indexing.

CodeSegments are produced transiently per parse pass and never persisted.
VectorEntries are their durable projection in the vector store, created or
overwritten by upsert and removed only by an explicit delete.

Segment metadata is a typed record (fqn, modifiers, annotations, imports,
javadoc) plus one kind-specific details record, plus an open ``extra`` map.
``SegmentMetadata.to_flat()`` produces the flat camelCase map written to
the vector store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from coderag.config.constants import CONTENT_KEY, FILE_PATH_KEY

# ============================================================================
# ENUMS
# ============================================================================


class SegmentKind(str, Enum):
    """Kind of a code segment."""

    FILE = "FILE"
    PACKAGE_DECLARATION = "PACKAGE_DECLARATION"
    CLASS = "CLASS"
    INTERFACE = "INTERFACE"
    ENUM = "ENUM"
    ANNOTATION = "ANNOTATION"
    METHOD = "METHOD"
    CONSTRUCTOR = "CONSTRUCTOR"
    FIELD = "FIELD"
    STATIC_BLOCK = "STATIC_BLOCK"
    INSTANCE_BLOCK = "INSTANCE_BLOCK"
    MODULE_DECLARATION = "MODULE_DECLARATION"
    MODULE_DIRECTIVE_REQUIRES = "MODULE_DIRECTIVE_REQUIRES"
    MODULE_DIRECTIVE_EXPORTS = "MODULE_DIRECTIVE_EXPORTS"
    MODULE_DIRECTIVE_OPENS = "MODULE_DIRECTIVE_OPENS"
    MODULE_DIRECTIVE_USES = "MODULE_DIRECTIVE_USES"
    MODULE_DIRECTIVE_PROVIDES = "MODULE_DIRECTIVE_PROVIDES"
    UNKNOWN = "UNKNOWN"

    @property
    def is_type(self) -> bool:
        return self in _TYPE_KINDS

    @property
    def is_module_directive(self) -> bool:
        return self.value.startswith("MODULE_DIRECTIVE_")


_TYPE_KINDS = frozenset(
    {SegmentKind.CLASS, SegmentKind.INTERFACE, SegmentKind.ENUM, SegmentKind.ANNOTATION}
)


class ChangeType(str, Enum):
    """Classification of a file-change event."""

    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"


class IndexerState(str, Enum):
    """Full-reindex state."""

    IDLE = "idle"
    RUNNING = "running"


# ============================================================================
# METADATA
# ============================================================================


@dataclass(frozen=True)
class AnnotationInfo:
    """An annotation applied to a declaration."""

    name: str
    details: str  # Full annotation text, e.g. '@SuppressWarnings("unchecked")'

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "details": self.details}


@dataclass(frozen=True)
class TypeDetails:
    """Class, interface, enum and annotation-type declarations."""

    superclass: str | None = None
    interfaces: str | None = None  # Comma-joined simple names
    type_parameters: str | None = None


@dataclass(frozen=True)
class MethodDetails:
    """Methods, constructors and annotation members."""

    return_type: str | None = None  # None for constructors
    parameters: str | None = None
    throws: str | None = None
    type_parameters: str | None = None
    default_value: str | None = None  # Annotation members only


@dataclass(frozen=True)
class FieldDetails:
    """Field variables and enum constants."""

    field_type: str | None = None
    initializer: str | None = None
    arguments: str | None = None  # Enum constants only


@dataclass(frozen=True)
class BlockDetails:
    """Static and instance initializer blocks."""

    static: bool = False


@dataclass(frozen=True)
class ModuleDirective:
    """A requires/exports/opens/uses/provides directive of a module."""

    kind: SegmentKind
    name: str
    fqn: str
    text: str

    def to_dict(self) -> dict[str, str]:
        return {
            "kind": self.kind.value,
            "name": self.name,
            "fqn": self.fqn,
            "text": self.text,
        }


@dataclass(frozen=True)
class ModuleDetails:
    """Module declarations. Directives are recorded here, not emitted."""

    is_open: bool = False
    directives: tuple[ModuleDirective, ...] = ()


KindDetails = TypeDetails | MethodDetails | FieldDetails | BlockDetails | ModuleDetails


@dataclass(frozen=True)
class SegmentMetadata:
    """Typed segment metadata with an open extension map."""

    fqn: str
    modifiers: tuple[str, ...] = ()
    annotations: tuple[AnnotationInfo, ...] = ()
    imports: dict[str, str] | None = None  # None for module segments
    javadoc: str | None = None
    details: KindDetails | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_flat(self) -> dict[str, Any]:
        """Flatten into the camelCase map stored alongside vectors.

        Absent optional values are omitted rather than written as null.
        """
        flat: dict[str, Any] = {"fqn": self.fqn}
        if self.modifiers:
            flat["modifiers"] = " ".join(self.modifiers)
        if self.annotations:
            flat["annotations"] = [a.to_dict() for a in self.annotations]
        if self.imports is not None:
            flat["imports"] = dict(self.imports)
        if self.javadoc:
            flat["javadoc"] = self.javadoc

        d = self.details
        if isinstance(d, TypeDetails):
            _put(flat, "superclass", d.superclass)
            _put(flat, "interfaces", d.interfaces)
            _put(flat, "typeParameters", d.type_parameters)
        elif isinstance(d, MethodDetails):
            _put(flat, "returnType", d.return_type)
            _put(flat, "parameters", d.parameters)
            _put(flat, "throws", d.throws)
            _put(flat, "typeParameters", d.type_parameters)
            _put(flat, "defaultValue", d.default_value)
        elif isinstance(d, FieldDetails):
            _put(flat, "fieldType", d.field_type)
            _put(flat, "initializer", d.initializer)
            _put(flat, "arguments", d.arguments)
        elif isinstance(d, BlockDetails):
            flat["static"] = d.static
        elif isinstance(d, ModuleDetails):
            flat["isOpen"] = d.is_open
            flat["directives"] = [directive.to_dict() for directive in d.directives]

        flat.update(self.extra)
        return flat


def _put(target: dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        target[key] = value


# ============================================================================
# SEGMENTS AND ENTRIES
# ============================================================================


@dataclass(frozen=True)
class CodeSegment:
    """A retrievable unit of source.

    ``start_line``/``end_line`` are 1-based and always describe the original
    declaration, so every chunk of an oversized declaration reports the same
    span.
    """

    id: str
    kind: SegmentKind
    relative_file_path: str
    start_line: int
    end_line: int
    content: str
    metadata: SegmentMetadata
    entity_name: str | None = None
    parent_id: str | None = None
    parent_fqn: str | None = None
    last_modified: float | None = None  # POSIX mtime of the source file
    content_checksum: str = ""
    is_sub_chunk: bool = False
    original_segment_id: str | None = None
    chunk_number: int | None = None
    total_chunks: int | None = None

    @property
    def fqn(self) -> str:
        return self.metadata.fqn

    def to_vector_metadata(self) -> dict[str, Any]:
        """Flat metadata written to the vector store for this segment."""
        flat: dict[str, Any] = {
            FILE_PATH_KEY: self.relative_file_path,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "type": self.kind.value,
            "entityName": self.entity_name or "",
            "contentChecksum": self.content_checksum,
        }
        _put(flat, "parentId", self.parent_id)
        _put(flat, "parentFqn", self.parent_fqn)
        _put(flat, "lastModified", self.last_modified)
        if self.is_sub_chunk:
            flat["isSubChunk"] = True
            _put(flat, "originalSegmentId", self.original_segment_id)
            _put(flat, "chunkNumber", self.chunk_number)
            _put(flat, "totalChunks", self.total_chunks)
        flat.update(self.metadata.to_flat())
        return flat

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output (CLI)."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "relativeFilePath": self.relative_file_path,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "entityName": self.entity_name,
            "parentId": self.parent_id,
            "parentFqn": self.parent_fqn,
            "isSubChunk": self.is_sub_chunk,
            "originalSegmentId": self.original_segment_id,
            "chunkNumber": self.chunk_number,
            "totalChunks": self.total_chunks,
            "metadata": self.metadata.to_flat(),
            CONTENT_KEY: self.content,
        }


@dataclass
class VectorEntry:
    """The persisted, embeddable projection of a segment."""

    id: str
    embedding: list[float]
    metadata: dict[str, Any]
    document: str
    distance: float | None = None  # Set on query results only

    @classmethod
    def from_segment(cls, segment: CodeSegment, embedding: list[float]) -> VectorEntry:
        return cls(
            id=segment.id,
            embedding=list(embedding),
            metadata=segment.to_vector_metadata(),
            document=segment.content,
        )

    @property
    def file_path(self) -> str | None:
        value = self.metadata.get(FILE_PATH_KEY)
        return str(value) if value is not None else None

    @property
    def score(self) -> float | None:
        """Similarity derived from distance (1 - distance)."""
        if self.distance is None:
            return None
        return 1.0 - self.distance


# ============================================================================
# RUN RESULTS
# ============================================================================


@dataclass
class IndexStats:
    """Counts reported by a full reindex, on success and on failure."""

    files_found: int = 0
    files_parsed: int = 0
    files_failed: int = 0
    segments_parsed: int = 0
    segments_embedded: int = 0
    embeddings_missing: int = 0
    entries_upserted: int = 0
    batches_failed: int = 0
    duration_sec: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "files_found": self.files_found,
            "files_parsed": self.files_parsed,
            "files_failed": self.files_failed,
            "segments_parsed": self.segments_parsed,
            "segments_embedded": self.segments_embedded,
            "embeddings_missing": self.embeddings_missing,
            "entries_upserted": self.entries_upserted,
            "batches_failed": self.batches_failed,
            "duration_sec": round(self.duration_sec, 3),
        }
