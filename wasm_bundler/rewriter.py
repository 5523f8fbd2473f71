"""Binding rewriter.

``wasm-bindgen`` emits a JS binding whose ``init`` function turns the URL of
the ``.wasm`` file into a ``fetch()`` call and whose ``load`` function
instantiates the module from that response. Neither works once the module
ships without the ``.wasm`` asset, so this module patches the generated file
in place:

- The body of ``load`` is replaced with one that decodes the base64 string
  exported by the shard aggregator and instantiates the module from it.
- The third statement of ``init`` (the ``input = fetch(input)`` branch) is
  replaced with an empty statement.
- An import of the aggregator is prepended, or replaces the one an earlier
  run left behind.

The binding is parsed with tree-sitter and edited by splicing the source bytes
of the matched nodes, so everything else is preserved byte-for-byte.
"""

from dataclasses import dataclass
import re

from tree_sitter import Language, Node, Parser, Tree
import tree_sitter_javascript


class RewriteError(ValueError):
    """Raised when a binding source does not have the expected shape."""


LOAD_FUNCTION_NAME: str = "load"
INIT_FUNCTION_NAME: str = "init"

# Position of the ``input = fetch(input)`` branch in wasm-bindgen's ``init``.
# Re-check this whenever the wasm-bindgen version changes.
INIT_STATEMENT_INDEX: int = 2

_FUNCTION_TYPES: tuple[str, ...] = ("function_declaration", "generator_function_declaration")

_LOAD_TEMPLATE: str = """async function load(module, imports) {
    const bytesFromBase64 = (base64String) => Uint8Array.from(atob(base64String), (c) => c.charCodeAt(0));
    const wasmBytecode = bytesFromBase64(__WASM_BUNDLER_BASE64__);
    const instance = await WebAssembly.instantiate(wasmBytecode, imports);
    return instance;
}
"""

_LOAD_DEFLATE_TEMPLATE: str = """async function load(module, imports) {
    const bytesFromBase64 = (base64String) => Uint8Array.from(atob(base64String), (c) => c.charCodeAt(0));
    const compressed = bytesFromBase64(__WASM_BUNDLER_BASE64__);
    const stream = new Blob([compressed]).stream().pipeThrough(new DecompressionStream('deflate'));
    const wasmBytecode = new Uint8Array(await new Response(stream).arrayBuffer());
    const instance = await WebAssembly.instantiate(wasmBytecode, imports);
    return instance;
}
"""

_EMPTY_STATEMENT: bytes = b";"

# Matches the base64 name read by a ``load`` body this module wrote earlier.
_PREVIOUS_NAME_RE: re.Pattern[str] = re.compile(r"bytesFromBase64\(([A-Za-z_$][A-Za-z0-9_$]*)\)")

_JS_LANGUAGE: Language = Language(tree_sitter_javascript.language())


@dataclass(frozen=True, slots=True)
class _Edit:
    """A byte-range replacement in the source.

    :ivar start: Start byte offset (inclusive).
    :ivar end: End byte offset (exclusive).
    :ivar text: Replacement bytes.
    """

    start: int
    end: int
    text: bytes


def parse_module(source: str) -> Tree:
    """Parse JS module source into a tree-sitter tree.

    :param source: JS source text.
    :returns: Parsed tree.
    :raises RewriteError: If the source has syntax errors.
    """

    parser: Parser = Parser(_JS_LANGUAGE)
    tree: Tree = parser.parse(source.encode("utf-8"))
    if tree.root_node.has_error is True:
        raise RewriteError("Binding source does not parse as a JavaScript module.")
    return tree


def iter_top_level_functions(root: Node) -> list[Node]:
    """Return top-level function declarations, including exported ones.

    :param root: Program node.
    :returns: Function declaration nodes in source order.
    """

    found: list[Node] = []
    for stmt in root.named_children:
        decl: Node | None = stmt
        if stmt.type == "export_statement":
            decl = stmt.child_by_field_name("declaration")
        if decl is not None and decl.type in _FUNCTION_TYPES:
            found.append(decl)
    return found


def find_function(root: Node, name: str) -> Node | None:
    """Return the first top-level function declaration called ``name``.

    :param root: Program node.
    :param name: Function name.
    :returns: The declaration node, or ``None``.
    """

    for decl in iter_top_level_functions(root):
        ident: Node | None = decl.child_by_field_name("name")
        if ident is not None and _node_text(ident) == name:
            return decl
    return None


def body_statements(decl: Node) -> list[Node]:
    """Return the top-level statements of a function body, skipping comments.

    :param decl: Function declaration node.
    :returns: Statement nodes in order.
    """

    body: Node | None = decl.child_by_field_name("body")
    if body is None:
        return []
    return [c for c in body.named_children if c.type != "comment"]


def render_import(import_name: str, import_specifier: str) -> str:
    """Render the aggregator import line prepended to the binding.

    :param import_name: Local binding name.
    :param import_specifier: Module specifier of the aggregator.
    :returns: Import statement followed by a newline.
    :raises RewriteError: If the specifier cannot be quoted safely.
    """

    if any(ch in import_specifier for ch in ("'", "\\", "\n", "\r")):
        raise RewriteError(f"Unsupported characters in import specifier {import_specifier!r}.")
    return f"import {import_name} from '{import_specifier}';\n"


def default_import_name(stmt: Node) -> str | None:
    """Return the local name of an import statement's default binding, if any."""

    for child in stmt.named_children:
        if child.type != "import_clause":
            continue
        for part in child.named_children:
            if part.type == "identifier":
                return _node_text(part)
    return None


def find_aggregator_imports(root: Node, load_body: Node, import_name: str) -> list[Node]:
    """Return top-level imports that already bind the aggregator string.

    An import matches when its default binding is ``import_name`` or the name
    read by a ``load`` body written by an earlier rewrite.

    :param root: Program node.
    :param load_body: Current body of ``load``.
    :param import_name: Local name the new import will bind.
    :returns: Matching import statements in source order.
    """

    names: set[str] = {import_name}
    m = _PREVIOUS_NAME_RE.search(_node_text(load_body))
    if m is not None:
        names.add(m.group(1))

    found: list[Node] = []
    for stmt in root.named_children:
        if stmt.type != "import_statement":
            continue
        if default_import_name(stmt) in names:
            found.append(stmt)
    return found


def load_replacement_body(import_name: str, *, compressed: bool) -> bytes:
    """Parse the fixed ``load`` snippet and return its body block source.

    :param import_name: Local name holding the aggregated base64 string.
    :param compressed: Whether the payload was deflated before encoding.
    :returns: Source bytes of the snippet's ``{ ... }`` body.
    """

    template: str = _LOAD_DEFLATE_TEMPLATE if compressed is True else _LOAD_TEMPLATE
    snippet: str = template.replace("__WASM_BUNDLER_BASE64__", import_name)
    tree: Tree = parse_module(snippet)
    decl: Node | None = find_function(tree.root_node, LOAD_FUNCTION_NAME)
    if decl is None:
        raise RewriteError("Internal error: load replacement snippet has no load function.")
    body: Node | None = decl.child_by_field_name("body")
    if body is None:
        raise RewriteError("Internal error: load replacement snippet has no body.")
    return snippet.encode("utf-8")[body.start_byte : body.end_byte]


def rewrite_binding(
    source: str,
    *,
    import_name: str = "wasmBase64",
    import_specifier: str = "./wasm/index.js",
    compressed: bool = False,
) -> str:
    """Rewrite a generated binding so it loads the module from the shard aggregator.

    Rewriting already rewritten output with the same arguments returns it
    unchanged; with a new name or specifier the earlier import is replaced.

    :param source: Generated binding source.
    :param import_name: Local name bound to the aggregator's default export.
    :param import_specifier: Module specifier of the aggregator, relative to the binding.
    :param compressed: Whether the payload was deflated before encoding.
    :returns: Rewritten binding source.
    :raises RewriteError: If ``load`` or ``init`` is missing or has an unexpected shape.
    """

    import_line: str = render_import(import_name, import_specifier)
    tree: Tree = parse_module(source)
    root: Node = tree.root_node

    load_decl: Node | None = find_function(root, LOAD_FUNCTION_NAME)
    if load_decl is None:
        raise RewriteError(f"Expected a top-level function declaration named {LOAD_FUNCTION_NAME!r}.")
    if any(c.type == "async" for c in load_decl.children) is False:
        raise RewriteError(f"Expected {LOAD_FUNCTION_NAME!r} to be an async function.")
    load_body: Node | None = load_decl.child_by_field_name("body")
    if load_body is None:
        raise RewriteError(f"Function {LOAD_FUNCTION_NAME!r} has no body.")

    init_decl: Node | None = find_function(root, INIT_FUNCTION_NAME)
    if init_decl is None:
        raise RewriteError(f"Expected a top-level function declaration named {INIT_FUNCTION_NAME!r}.")
    init_stmts: list[Node] = body_statements(init_decl)
    if len(init_stmts) <= INIT_STATEMENT_INDEX:
        raise RewriteError(
            f"Expected at least {INIT_STATEMENT_INDEX + 1} statements in {INIT_FUNCTION_NAME!r}, "
            f"found {len(init_stmts)}."
        )
    target_stmt: Node = init_stmts[INIT_STATEMENT_INDEX]

    previous_imports: list[Node] = find_aggregator_imports(root, load_body, import_name)

    edits: list[_Edit] = [
        _Edit(
            start=load_body.start_byte,
            end=load_body.end_byte,
            text=load_replacement_body(import_name, compressed=compressed),
        ),
        _Edit(start=target_stmt.start_byte, end=target_stmt.end_byte, text=_EMPTY_STATEMENT),
    ]
    data: bytes = source.encode("utf-8")
    # An earlier run's import is replaced in place; any duplicates are dropped.
    for i, stmt in enumerate(previous_imports):
        if i == 0:
            edits.append(
                _Edit(start=stmt.start_byte, end=stmt.end_byte, text=import_line.rstrip("\n").encode("utf-8"))
            )
        else:
            end: int = stmt.end_byte
            if data[end : end + 1] == b"\n":
                end += 1
            edits.append(_Edit(start=stmt.start_byte, end=end, text=b""))

    out: bytes = _apply_edits(data, edits)
    rewritten: str = out.decode("utf-8")

    if len(previous_imports) == 0:
        rewritten = import_line + rewritten

    try:
        parse_module(rewritten)
    except RewriteError as e:
        raise RewriteError("Rewritten binding no longer parses; refusing to write it.") from e
    return rewritten


def _apply_edits(data: bytes, edits: list[_Edit]) -> bytes:
    """Apply non-overlapping byte-range edits.

    :param data: Original bytes.
    :param edits: Replacements to apply.
    :returns: Edited bytes.
    :raises RewriteError: If two edits overlap.
    """

    ordered: list[_Edit] = sorted(edits, key=lambda e: e.start)
    for prev, cur in zip(ordered, ordered[1:]):
        if cur.start < prev.end:
            raise RewriteError("Internal error: overlapping edits in binding rewrite.")

    out: bytes = data
    for edit in reversed(ordered):
        out = out[0 : edit.start] + edit.text + out[edit.end :]
    return out


def _node_text(node: Node) -> str:
    text: bytes | None = node.text
    if text is None:
        return ""
    return text.decode("utf-8")
