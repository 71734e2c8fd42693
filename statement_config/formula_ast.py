"""
Restricted AST for line calculation formulas.

Template formulas use a fixed, arithmetic-only expression language.  This
module parses and validates formulas, rejecting anything that could execute
arbitrary code, and extracts the symbols a formula references so that the
dependency resolver can order line evaluation.

Allowed:
  - Arithmetic: +, -, *, / and unary minus
  - Literals: int and float numbers
  - Names: UPPER_SNAKE event codes or line codes (max 50 characters)
  - Functions: SUM, DIFF, MAX, MIN, AVG, ABS, COUNT, IF
  - Comparisons: <, <=, >, >=, ==, != (only in the condition of IF)
  - Domain functions: WORKING_CAPITAL_CHANGE(RECEIVABLES|PAYABLES) and
    CROSS_STATEMENT_SURPLUS_DEFICIT (bare or as a zero-argument call)

Rejected:
  - attribute access, subscripts, strings, lambda, keyword arguments,
    lowercase names, any function outside the list above
"""

from __future__ import annotations

import ast
import re
from dataclasses import dataclass

# Functions allowed in formulas, with (min_args, max_args). None = unbounded.
FUNCTION_ARITY: dict[str, tuple[int, int | None]] = {
    "SUM": (1, None),
    "DIFF": (2, 2),
    "MAX": (1, None),
    "MIN": (1, None),
    "AVG": (1, None),
    "ABS": (1, 1),
    "COUNT": (1, None),
    "IF": (3, 3),
    "WORKING_CAPITAL_CHANGE": (1, 1),
    "CROSS_STATEMENT_SURPLUS_DEFICIT": (0, 0),
}

ALLOWED_FUNCTIONS: frozenset[str] = frozenset(FUNCTION_ARITY)

# Names that are domain functions when used bare
BARE_DOMAIN_NAMES: frozenset[str] = frozenset({"CROSS_STATEMENT_SURPLUS_DEFICIT"})

# Accepted arguments to WORKING_CAPITAL_CHANGE
WORKING_CAPITAL_KINDS: frozenset[str] = frozenset({"RECEIVABLES", "PAYABLES"})

NAME_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")
MAX_NAME_LENGTH = 50
MAX_REFERENCES = 10

_COMPARISON_OPS = (ast.Eq, ast.NotEq, ast.Lt, ast.LtE, ast.Gt, ast.GtE)


@dataclass(frozen=True)
class FormulaASTError:
    """A validation error found in a formula."""

    expression: str
    message: str
    node_type: str = ""
    lineno: int = 0
    col_offset: int = 0


def check_parentheses(expression: str) -> str | None:
    """Return an error message if parentheses are unbalanced, else None."""
    depth = 0
    for char in expression:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                return "Unbalanced parentheses: unexpected ')'"
    if depth != 0:
        return "Unbalanced parentheses: missing ')'"
    return None


def parse_formula(expression: str) -> ast.Expression:
    """Parse a formula into an expression tree.

    Raises:
        SyntaxError: if the text is not a single Python expression.
    """
    return ast.parse(expression.strip(), mode="eval")


def validate_formula_expression(expression: str) -> list[FormulaASTError]:
    """Validate a formula against the restricted AST.

    Returns a list of errors. Empty list means the formula is valid.
    """
    if not expression or not expression.strip():
        return [FormulaASTError(expression=expression, message="Formula is empty")]

    paren_error = check_parentheses(expression)
    if paren_error:
        return [FormulaASTError(expression=expression, message=paren_error)]

    try:
        tree = parse_formula(expression)
    except SyntaxError as e:
        return [
            FormulaASTError(
                expression=expression,
                message=f"Syntax error: {e.msg}",
                lineno=e.lineno or 0,
                col_offset=e.offset or 0,
            )
        ]

    errors: list[FormulaASTError] = []
    _validate_node(tree.body, expression, errors, in_condition=False)

    references = _collect_references(tree.body)
    if len(references) > MAX_REFERENCES:
        errors.append(
            FormulaASTError(
                expression=expression,
                message=(
                    f"Too many references: {len(references)} "
                    f"(maximum {MAX_REFERENCES})"
                ),
            )
        )
    return errors


def extract_references(expression: str) -> tuple[str, ...]:
    """Return the distinct symbols a formula references, in first-use order.

    Function names, WORKING_CAPITAL_CHANGE selectors and bare domain names
    are not references.  Unparseable formulas reference nothing.
    """
    try:
        tree = parse_formula(expression)
    except SyntaxError:
        return ()
    return _collect_references(tree.body)


def _collect_references(node: ast.AST) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    _walk_references(node, seen)
    return tuple(seen)


def _walk_references(node: ast.AST, seen: dict[str, None]) -> None:
    if isinstance(node, ast.Name):
        if node.id not in BARE_DOMAIN_NAMES:
            seen.setdefault(node.id, None)
        return
    if isinstance(node, ast.Call):
        func_name = _get_name(node.func)
        if func_name == "WORKING_CAPITAL_CHANGE":
            return
        for arg in node.args:
            _walk_references(arg, seen)
        return
    for child in ast.iter_child_nodes(node):
        _walk_references(child, seen)


def _validate_node(
    node: ast.AST,
    expression: str,
    errors: list[FormulaASTError],
    *,
    in_condition: bool,
) -> None:
    """Recursively validate an AST node."""

    if isinstance(node, ast.BinOp):
        if isinstance(node.op, (ast.Add, ast.Sub, ast.Mult, ast.Div)):
            _validate_node(node.left, expression, errors, in_condition=False)
            _validate_node(node.right, expression, errors, in_condition=False)
        else:
            errors.append(
                FormulaASTError(
                    expression=expression,
                    message=f"Disallowed binary operator: {type(node.op).__name__}",
                    node_type=type(node.op).__name__,
                )
            )

    elif isinstance(node, ast.UnaryOp):
        if not isinstance(node.op, (ast.USub, ast.UAdd)):
            errors.append(
                FormulaASTError(
                    expression=expression,
                    message=f"Disallowed unary operator: {type(node.op).__name__}",
                    node_type=type(node.op).__name__,
                )
            )
        _validate_node(node.operand, expression, errors, in_condition=False)

    elif isinstance(node, ast.Compare):
        if not in_condition:
            errors.append(
                FormulaASTError(
                    expression=expression,
                    message="Comparisons are only allowed in the condition of IF",
                    node_type="Compare",
                )
            )
        for op in node.ops:
            if not isinstance(op, _COMPARISON_OPS):
                errors.append(
                    FormulaASTError(
                        expression=expression,
                        message=f"Disallowed comparison: {type(op).__name__}",
                        node_type=type(op).__name__,
                    )
                )
        _validate_node(node.left, expression, errors, in_condition=False)
        for comparator in node.comparators:
            _validate_node(comparator, expression, errors, in_condition=False)

    elif isinstance(node, ast.BoolOp):
        # and / or combine IF conditions
        if not in_condition:
            errors.append(
                FormulaASTError(
                    expression=expression,
                    message="Logical operators are only allowed in the condition of IF",
                    node_type="BoolOp",
                )
            )
        for value in node.values:
            _validate_node(value, expression, errors, in_condition=True)

    elif isinstance(node, ast.Call):
        _validate_call(node, expression, errors)

    elif isinstance(node, ast.Name):
        _validate_name(node.id, expression, errors)

    elif isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            errors.append(
                FormulaASTError(
                    expression=expression,
                    message=f"Disallowed constant type: {type(node.value).__name__}",
                    node_type="Constant",
                )
            )

    else:
        errors.append(
            FormulaASTError(
                expression=expression,
                message=f"Disallowed AST node type: {type(node).__name__}",
                node_type=type(node).__name__,
            )
        )


def _validate_call(
    node: ast.Call, expression: str, errors: list[FormulaASTError]
) -> None:
    func_name = _get_name(node.func)
    if not isinstance(node.func, ast.Name) or func_name not in ALLOWED_FUNCTIONS:
        errors.append(
            FormulaASTError(
                expression=expression,
                message=f"Disallowed function call: {func_name}",
                node_type="Call",
            )
        )
        return

    if node.keywords:
        errors.append(
            FormulaASTError(
                expression=expression,
                message=f"{func_name} does not accept keyword arguments",
                node_type="Call",
            )
        )

    min_args, max_args = FUNCTION_ARITY[func_name]
    n_args = len(node.args)
    if n_args < min_args or (max_args is not None and n_args > max_args):
        if max_args is None:
            expected = f"at least {min_args}"
        elif min_args == max_args:
            expected = f"exactly {min_args}"
        else:
            expected = f"{min_args} to {max_args}"
        errors.append(
            FormulaASTError(
                expression=expression,
                message=f"{func_name} requires {expected} argument(s), got {n_args}",
                node_type="Call",
            )
        )

    if func_name == "WORKING_CAPITAL_CHANGE":
        for arg in node.args:
            if not (isinstance(arg, ast.Name) and arg.id in WORKING_CAPITAL_KINDS):
                errors.append(
                    FormulaASTError(
                        expression=expression,
                        message=(
                            "WORKING_CAPITAL_CHANGE argument must be one of "
                            f"{', '.join(sorted(WORKING_CAPITAL_KINDS))}"
                        ),
                        node_type="Call",
                    )
                )
        return

    for index, arg in enumerate(node.args):
        _validate_node(
            arg,
            expression,
            errors,
            in_condition=(func_name == "IF" and index == 0),
        )


def _validate_name(name: str, expression: str, errors: list[FormulaASTError]) -> None:
    if len(name) > MAX_NAME_LENGTH:
        errors.append(
            FormulaASTError(
                expression=expression,
                message=f"Name exceeds {MAX_NAME_LENGTH} characters: {name}",
                node_type="Name",
            )
        )
    if not NAME_PATTERN.match(name):
        errors.append(
            FormulaASTError(
                expression=expression,
                message=f"Disallowed name: {name} (expected UPPER_SNAKE_CASE)",
                node_type="Name",
            )
        )
    elif name in ALLOWED_FUNCTIONS and name not in BARE_DOMAIN_NAMES:
        errors.append(
            FormulaASTError(
                expression=expression,
                message=f"Function {name} must be called",
                node_type="Name",
            )
        )


def _get_name(node: ast.AST) -> str:
    """Extract a human-readable name from an AST node."""
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return f"{_get_name(node.value)}.{node.attr}"
    return type(node).__name__
