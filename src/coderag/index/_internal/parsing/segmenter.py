"""Tree-sitter segmentation of Java source into CodeSegments.

The walk is depth-first over declarations. Enclosing-declaration context
(FQN chain and parent-id chain) is an immutable ``WalkContext`` passed into
each recursive call; entering a type or module derives a new context for its
children instead of pushing onto shared stacks.

What is emitted:
- Types (class, interface, enum, annotation type) and their members
- Methods, constructors, annotation members (as METHOD)
- One FIELD per declared variable; enum constants (as FIELD)
- Static and instance initializer blocks
- Module declarations, with their directives folded into metadata

Package and import declarations feed FQNs and the imports snapshot but are
never emitted. Method bodies and enum-constant bodies are not descended.

Files with syntax errors yield an empty list, never an exception. Only
file-level read failures raise ``ParseError``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import structlog
import tree_sitter
import tree_sitter_java

from coderag.config.models import SegmentationConfig
from coderag.core.errors import ParseError
from coderag.index._internal.parsing.chunking import (
    content_checksum,
    finalize_id,
    make_base_id,
    split_segment,
)
from coderag.index.models import (
    AnnotationInfo,
    BlockDetails,
    CodeSegment,
    FieldDetails,
    KindDetails,
    MethodDetails,
    ModuleDetails,
    ModuleDirective,
    SegmentKind,
    SegmentMetadata,
    TypeDetails,
)

log = structlog.get_logger(__name__)

_TYPE_NODES: dict[str, SegmentKind] = {
    "class_declaration": SegmentKind.CLASS,
    "interface_declaration": SegmentKind.INTERFACE,
    "enum_declaration": SegmentKind.ENUM,
    "annotation_type_declaration": SegmentKind.ANNOTATION,
}

_FIELD_NODES = frozenset({"field_declaration", "constant_declaration"})

_DIRECTIVE_KINDS: dict[str, SegmentKind] = {
    "requires": SegmentKind.MODULE_DIRECTIVE_REQUIRES,
    "exports": SegmentKind.MODULE_DIRECTIVE_EXPORTS,
    "opens": SegmentKind.MODULE_DIRECTIVE_OPENS,
    "uses": SegmentKind.MODULE_DIRECTIVE_USES,
    "provides": SegmentKind.MODULE_DIRECTIVE_PROVIDES,
}

_NAME_NODES = frozenset({"identifier", "scoped_identifier"})
_COMMENT_NODES = frozenset({"block_comment", "line_comment", "comment"})
_ANNOTATION_NODES = frozenset({"annotation", "marker_annotation"})
_ACCESS_MODIFIERS = frozenset({"public", "protected", "private"})

STATIC_INITIALIZER = "static_initializer"
INSTANCE_INITIALIZER = "instance_initializer"


@dataclass(frozen=True)
class WalkContext:
    """Per-call traversal context. Never mutated; ``enter`` derives a child."""

    relative_path: str
    source: bytes
    package: str = ""
    imports: Mapping[str, str] = field(default_factory=dict)
    last_modified: float | None = None
    fqn_chain: tuple[str, ...] = ()
    id_chain: tuple[str, ...] = ()

    @property
    def parent_fqn(self) -> str | None:
        return self.fqn_chain[-1] if self.fqn_chain else None

    @property
    def parent_id(self) -> str | None:
        return self.id_chain[-1] if self.id_chain else None

    def enter(self, segment_id: str, fqn: str) -> WalkContext:
        return replace(
            self,
            fqn_chain=(*self.fqn_chain, fqn),
            id_chain=(*self.id_chain, segment_id),
        )

    def text(self, node: Any) -> str:
        return self.source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def compute_fqn(kind: SegmentKind, name: str, ctx: WalkContext) -> str:
    """Fully-qualified name of a declaration in the given context."""
    parent = ctx.parent_fqn
    if kind.is_type:
        if parent:
            return f"{parent}.{name}"
        return f"{ctx.package}.{name}" if ctx.package else name
    if kind in (SegmentKind.METHOD, SegmentKind.CONSTRUCTOR, SegmentKind.FIELD):
        return f"{parent}#{name}" if parent else name
    if kind == SegmentKind.STATIC_BLOCK:
        return f"{parent}#{STATIC_INITIALIZER}" if parent else STATIC_INITIALIZER
    if kind == SegmentKind.INSTANCE_BLOCK:
        return f"{parent}#{INSTANCE_INITIALIZER}" if parent else INSTANCE_INITIALIZER
    if kind in (SegmentKind.MODULE_DECLARATION, SegmentKind.PACKAGE_DECLARATION):
        return name
    if kind.is_module_directive:
        label = f"{kind.value.removeprefix('MODULE_DIRECTIVE_').lower()}:{name}"
        return f"{parent}#{label}" if parent else label
    return f"{parent}.{name}" if parent else name


@dataclass(frozen=True)
class _Declared:
    """Modifier keywords and annotations read from a declaration."""

    modifiers: tuple[str, ...] = ()
    annotations: tuple[AnnotationInfo, ...] = ()


@dataclass
class JavaSegmenter:
    """Parse one Java file into an ordered list of CodeSegments.

    Stateless between calls and safe to share across threads: every call
    builds its own tree-sitter parser.

    Usage::

        segmenter = JavaSegmenter(max_segment_length=2000, overlap_chars=100)
        segments = segmenter.parse(source, "src/main/java/com/acme/Foo.java")
    """

    max_segment_length: int = 2000
    overlap_chars: int = 100
    _language: Any = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self._language = tree_sitter.Language(tree_sitter_java.language())

    @classmethod
    def from_config(cls, config: SegmentationConfig) -> JavaSegmenter:
        return cls(
            max_segment_length=config.max_segment_length,
            overlap_chars=config.overlap_chars,
        )

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def parse_file(self, path: Path, root: Path) -> list[CodeSegment]:
        """Read and parse a file, naming segments by its path relative to root.

        Raises:
            ParseError: The file could not be read.
        """
        try:
            source = path.read_bytes()
            last_modified = path.stat().st_mtime
        except OSError as e:
            raise ParseError.unreadable(str(path), str(e)) from e
        try:
            relative = path.relative_to(root).as_posix()
        except ValueError:
            relative = path.as_posix()
        return self.parse(source, relative, last_modified)

    def parse(
        self,
        content: str | bytes,
        relative_path: str,
        last_modified: float | None = None,
    ) -> list[CodeSegment]:
        """Segment file content. Syntax errors yield an empty list."""
        source = content.encode("utf-8") if isinstance(content, str) else content

        parser = tree_sitter.Parser()
        parser.language = self._language
        tree = parser.parse(source)
        root = tree.root_node

        if root.has_error:
            log.warning("file_skipped_syntax_errors", path=relative_path)
            return []

        package, imports = self._read_header(root, source)
        ctx = WalkContext(
            relative_path=relative_path,
            source=source,
            package=package,
            imports=imports,
            last_modified=last_modified,
        )

        segments: list[CodeSegment] = []
        for child in root.named_children:
            if child.type in _TYPE_NODES:
                self._visit_type(child, ctx, segments)
            elif child.type == "module_declaration":
                self._visit_module(child, ctx, segments)

        log.debug("file_parsed", path=relative_path, segments=len(segments))
        return segments

    # -------------------------------------------------------------------------
    # Header (package + imports)
    # -------------------------------------------------------------------------

    def _read_header(self, root: Any, source: bytes) -> tuple[str, dict[str, str]]:
        package = ""
        imports: dict[str, str] = {}
        for child in root.named_children:
            if child.type == "package_declaration":
                name_node = _first_named(child, _NAME_NODES)
                if name_node is not None:
                    package = _node_text(name_node, source)
            elif child.type == "import_declaration":
                if any(c.type == "asterisk" for c in child.children):
                    continue
                name_node = _first_named(child, _NAME_NODES)
                if name_node is not None:
                    full_name = _node_text(name_node, source)
                    imports[full_name.rsplit(".", 1)[-1]] = full_name
        return package, imports

    # -------------------------------------------------------------------------
    # Declarations
    # -------------------------------------------------------------------------

    def _visit_type(self, node: Any, ctx: WalkContext, out: list[CodeSegment]) -> None:
        kind = _TYPE_NODES[node.type]
        name = _field_text(node, "name", ctx)
        declared = self._read_modifiers(node, ctx)

        superclass: str | None = None
        interfaces: str | None = None
        superclass_node = node.child_by_field_name("superclass")
        if superclass_node is not None:
            superclass = _join_named(superclass_node, ctx)
        interfaces_node = node.child_by_field_name("interfaces")
        if interfaces_node is not None:
            interfaces = _join_type_list(interfaces_node, ctx)
        for child in node.named_children:
            if child.type == "extends_interfaces":
                superclass = _join_type_list(child, ctx)

        details = TypeDetails(
            superclass=superclass,
            interfaces=interfaces,
            type_parameters=_type_parameters(node, ctx),
        )
        segment_id = self._emit(node, kind, name, declared, details, ctx, out)
        if segment_id is None:
            return

        child_ctx = ctx.enter(segment_id, compute_fqn(kind, name, ctx))
        body = node.child_by_field_name("body")
        if body is not None:
            for member in body.named_children:
                self._visit_member(member, child_ctx, out)

    def _visit_member(self, node: Any, ctx: WalkContext, out: list[CodeSegment]) -> None:
        t = node.type
        if t in _TYPE_NODES:
            self._visit_type(node, ctx, out)
        elif t == "method_declaration":
            self._visit_method(node, ctx, out)
        elif t == "constructor_declaration":
            self._visit_constructor(node, ctx, out)
        elif t in _FIELD_NODES:
            self._visit_field(node, ctx, out)
        elif t == "static_initializer":
            self._visit_block(node, ctx, out, static=True)
        elif t == "block":
            self._visit_block(node, ctx, out, static=False)
        elif t == "annotation_type_element_declaration":
            self._visit_annotation_member(node, ctx, out)
        elif t == "enum_constant":
            self._visit_enum_constant(node, ctx, out)
        elif t == "enum_body_declarations":
            for member in node.named_children:
                self._visit_member(member, ctx, out)

    def _visit_method(self, node: Any, ctx: WalkContext, out: list[CodeSegment]) -> None:
        details = MethodDetails(
            return_type=_field_text(node, "type", ctx) or None,
            parameters=_parameters(node, ctx),
            throws=_throws(node, ctx),
            type_parameters=_type_parameters(node, ctx),
        )
        name = _field_text(node, "name", ctx)
        self._emit(node, SegmentKind.METHOD, name, self._read_modifiers(node, ctx), details, ctx, out)

    def _visit_constructor(self, node: Any, ctx: WalkContext, out: list[CodeSegment]) -> None:
        details = MethodDetails(
            parameters=_parameters(node, ctx),
            throws=_throws(node, ctx),
            type_parameters=_type_parameters(node, ctx),
        )
        name = _field_text(node, "name", ctx)
        self._emit(node, SegmentKind.CONSTRUCTOR, name, self._read_modifiers(node, ctx), details, ctx, out)

    def _visit_annotation_member(self, node: Any, ctx: WalkContext, out: list[CodeSegment]) -> None:
        declared = self._read_modifiers(node, ctx)
        modifiers = declared.modifiers
        if not _ACCESS_MODIFIERS.intersection(modifiers):
            modifiers = ("public", *modifiers)
        details = MethodDetails(
            return_type=_field_text(node, "type", ctx) or None,
            default_value=_field_text(node, "value", ctx) or None,
        )
        name = _field_text(node, "name", ctx)
        declared = replace(declared, modifiers=modifiers)
        self._emit(node, SegmentKind.METHOD, name, declared, details, ctx, out)

    def _visit_field(self, node: Any, ctx: WalkContext, out: list[CodeSegment]) -> None:
        declared = self._read_modifiers(node, ctx)
        field_type = _field_text(node, "type", ctx) or None
        for declarator in node.children_by_field_name("declarator"):
            name = _field_text(declarator, "name", ctx)
            details = FieldDetails(
                field_type=field_type,
                initializer=_field_text(declarator, "value", ctx) or None,
            )
            self._emit(node, SegmentKind.FIELD, name, declared, details, ctx, out)

    def _visit_enum_constant(self, node: Any, ctx: WalkContext, out: list[CodeSegment]) -> None:
        annotations = self._read_modifiers(node, ctx).annotations
        declared = _Declared(modifiers=("public", "static", "final"), annotations=annotations)

        enum_name = ctx.parent_fqn.rsplit(".", 1)[-1] if ctx.parent_fqn else None
        arguments: str | None = None
        args_node = node.child_by_field_name("arguments")
        if args_node is not None and args_node.named_child_count:
            arguments = ", ".join(ctx.text(a) for a in args_node.named_children)

        details = FieldDetails(field_type=enum_name, arguments=arguments)
        name = _field_text(node, "name", ctx)
        self._emit(node, SegmentKind.FIELD, name, declared, details, ctx, out)

    def _visit_block(self, node: Any, ctx: WalkContext, out: list[CodeSegment], *, static: bool) -> None:
        kind = SegmentKind.STATIC_BLOCK if static else SegmentKind.INSTANCE_BLOCK
        name = STATIC_INITIALIZER if static else INSTANCE_INITIALIZER
        self._emit(node, kind, name, _Declared(), BlockDetails(static=static), ctx, out)

    def _visit_module(self, node: Any, ctx: WalkContext, out: list[CodeSegment]) -> None:
        name = _field_text(node, "name", ctx)
        annotations = tuple(
            _annotation_info(child, ctx) for child in node.named_children if child.type in _ANNOTATION_NODES
        )
        is_open = any(child.type == "open" for child in node.children)

        module_fqn = compute_fqn(SegmentKind.MODULE_DECLARATION, name, ctx)
        directive_ctx = replace(ctx, fqn_chain=(*ctx.fqn_chain, module_fqn))
        directives: list[ModuleDirective] = []
        body = node.child_by_field_name("body")
        if body is not None:
            for child in body.named_children:
                directive = _read_directive(child, directive_ctx)
                if directive is not None:
                    log.debug(
                        "module_directive_recorded",
                        path=ctx.relative_path,
                        kind=directive.kind.value,
                        name=directive.name,
                    )
                    directives.append(directive)

        details = ModuleDetails(is_open=is_open, directives=tuple(directives))
        self._emit(node, SegmentKind.MODULE_DECLARATION, name, _Declared(annotations=annotations), details, ctx, out)

    # -------------------------------------------------------------------------
    # Emission
    # -------------------------------------------------------------------------

    def _emit(
        self,
        node: Any,
        kind: SegmentKind,
        name: str,
        declared: _Declared,
        details: KindDetails,
        ctx: WalkContext,
        out: list[CodeSegment],
    ) -> str | None:
        """Build, chunk and append a segment. Returns the id children should
        reference as their parent, or None if nothing was emitted."""
        content = ctx.text(node)
        start_line = node.start_point[0] + 1
        end_line = node.end_point[0] + 1

        base_id = make_base_id(ctx.relative_path, start_line, kind, name)
        if not content.strip() or start_line < 1 or end_line < start_line:
            log.warning(
                "segment_skipped_invalid",
                path=ctx.relative_path,
                kind=kind.value,
                name=name,
                start_line=start_line,
                end_line=end_line,
            )
            return None

        is_module = kind == SegmentKind.MODULE_DECLARATION
        metadata = SegmentMetadata(
            fqn=compute_fqn(kind, name, ctx),
            modifiers=declared.modifiers,
            annotations=declared.annotations,
            imports=None if is_module else dict(ctx.imports),
            javadoc=_javadoc(node, ctx),
            details=details,
        )
        segment = CodeSegment(
            id=finalize_id(base_id, content),
            kind=kind,
            relative_file_path=ctx.relative_path,
            start_line=start_line,
            end_line=end_line,
            content=content,
            metadata=metadata,
            entity_name=name or None,
            parent_id=ctx.parent_id,
            parent_fqn=ctx.parent_fqn,
            last_modified=ctx.last_modified,
            content_checksum=content_checksum(content),
        )

        pieces = split_segment(segment, base_id, self.max_segment_length, self.overlap_chars)
        if len(pieces) > 1:
            log.debug(
                "segment_chunked",
                path=ctx.relative_path,
                name=name,
                length=len(content),
                chunks=len(pieces),
            )
        out.extend(pieces)
        return pieces[0].id if pieces else None

    def _read_modifiers(self, node: Any, ctx: WalkContext) -> _Declared:
        modifiers_node = _first_named(node, frozenset({"modifiers"}))
        if modifiers_node is None:
            return _Declared()
        keywords: list[str] = []
        annotations: list[AnnotationInfo] = []
        for child in modifiers_node.children:
            if child.type in _ANNOTATION_NODES:
                annotations.append(_annotation_info(child, ctx))
            elif child.type not in _COMMENT_NODES:
                keywords.append(ctx.text(child))
        return _Declared(modifiers=tuple(keywords), annotations=tuple(annotations))


# =============================================================================
# Node helpers
# =============================================================================


def _node_text(node: Any, source: bytes) -> str:
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def _first_named(node: Any, types: frozenset[str]) -> Any | None:
    for child in node.named_children:
        if child.type in types:
            return child
    return None


def _field_text(node: Any, field_name: str, ctx: WalkContext) -> str:
    child = node.child_by_field_name(field_name)
    return ctx.text(child) if child is not None else ""


def _join_named(node: Any, ctx: WalkContext) -> str | None:
    parts = [ctx.text(c) for c in node.named_children if c.type not in _COMMENT_NODES]
    return ", ".join(parts) if parts else None


def _join_type_list(node: Any, ctx: WalkContext) -> str | None:
    type_list = _first_named(node, frozenset({"type_list"}))
    return _join_named(type_list if type_list is not None else node, ctx)


def _type_parameters(node: Any, ctx: WalkContext) -> str | None:
    tp = node.child_by_field_name("type_parameters")
    if tp is None:
        tp = _first_named(node, frozenset({"type_parameters"}))
    return _join_named(tp, ctx) if tp is not None else None


def _parameters(node: Any, ctx: WalkContext) -> str | None:
    params = node.child_by_field_name("parameters")
    if params is None:
        return None
    return ", ".join(ctx.text(p) for p in params.named_children if p.type not in _COMMENT_NODES)


def _throws(node: Any, ctx: WalkContext) -> str | None:
    throws = _first_named(node, frozenset({"throws"}))
    return _join_named(throws, ctx) if throws is not None else None


def _annotation_info(node: Any, ctx: WalkContext) -> AnnotationInfo:
    name_node = node.child_by_field_name("name")
    name = ctx.text(name_node) if name_node is not None else ctx.text(node).lstrip("@")
    return AnnotationInfo(name=name, details=ctx.text(node))


def _javadoc(node: Any, ctx: WalkContext) -> str | None:
    prev = node.prev_sibling
    if prev is None or prev.type not in _COMMENT_NODES:
        return None
    text = ctx.text(prev)
    return text if text.startswith("/**") else None


def _read_directive(node: Any, ctx: WalkContext) -> ModuleDirective | None:
    if node.type.endswith("_module_directive"):
        keyword = node.type.split("_", 1)[0]
    elif node.type == "module_directive":
        first = node.child(0)
        keyword = first.type if first is not None else ""
    else:
        return None

    kind = _DIRECTIVE_KINDS.get(keyword)
    if kind is None:
        return None
    name_node = _first_named(node, _NAME_NODES)
    name = ctx.text(name_node) if name_node is not None else ""
    return ModuleDirective(kind=kind, name=name, fqn=compute_fqn(kind, name, ctx), text=ctx.text(node))
