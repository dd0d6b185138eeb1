"""Turn a formula string into a flat, validated list of terms.

Parenthesized groups, function calls and brace pools are cut out of the
formula first and replaced by ``$$F<n>$$`` placeholders, so what remains can
be split on operators without worrying about nesting. The placeholders are
turned back into ParentheticalTerm, MathTerm and PoolTerm objects once the
flat sequence has been classified and validated.
"""

import logging
import re
import typing

from rollexpr.config import EngineConfig
from rollexpr.dice import DiceTerm
from rollexpr.errors import ParseError
from rollexpr.modifiers import split_modifiers
from rollexpr.symbols import as_symbol_table
from rollexpr.terms import (
    FLAVOR_REGEXP_STRING,
    POOL_MODIFIERS_REGEXP_STRING,
    MathTerm,
    NumericTerm,
    OperatorTerm,
    ParentheticalTerm,
    PoolTerm,
    RollTerm,
    StringTerm,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_REGEXP = re.compile(r"(\$\$F[0-9]+\$\$)")
_PLACEHOLDER_INDEX_REGEXP = re.compile(r"^\$\$F([0-9]+)\$\$$")
_FUNCTION_NAME_REGEXP = re.compile(r"([A-Za-z][A-Za-z0-9]+)$")
_FLAVOR_ONLY_REGEXP = re.compile(r"^%s$" % FLAVOR_REGEXP_STRING)
_POOL_SUFFIX_REGEXP = re.compile(
    r"^%s?%s?$" % (POOL_MODIFIERS_REGEXP_STRING, FLAVOR_REGEXP_STRING)
)

_OPENERS = {"(": ")", "{": "}"}
_OPERATORS = set(OperatorTerm.OPERATORS)


class Group(typing.NamedTuple):
    """A span of the formula that was replaced by a placeholder."""

    kind: str  # "(" or "{"
    fn: typing.Optional[str]
    inner: str


class ParsedFormula(typing.NamedTuple):
    terms: typing.List[RollTerm]
    formula: str


def _skip_flavor(text: str, i: int) -> int:
    """Return the index just past the ``]`` closing the flavor opened at ``i``."""
    end = text.find("]", i + 1)
    if end < 0:
        raise ParseError("unmatched '[' in %s" % text)
    return end + 1


def _find_close(text: str, start: int) -> int:
    """Index of the bracket matching the opener at ``start``."""
    opener = text[start]
    closer = _OPENERS[opener]
    depth = 0
    i = start
    while i < len(text):
        c = text[i]
        if c == "[":
            i = _skip_flavor(text, i)
            continue
        if c == opener:
            depth += 1
        elif c == closer:
            depth -= 1
            if depth == 0:
                return i
        i += 1
    raise ParseError("unmatched '%s' in %s" % (opener, text))


def extract_groups(formula: str) -> typing.Tuple[str, typing.List[Group]]:
    """Replace top level ``(...)``, ``fn(...)`` and ``{...}`` spans by placeholders."""
    groups: typing.List[Group] = []
    out: typing.List[str] = []
    i = 0
    while i < len(formula):
        c = formula[i]
        if c == "[":
            end = _skip_flavor(formula, i)
            out.append(formula[i:end])
            i = end
        elif c in _OPENERS:
            end = _find_close(formula, i)
            fn = None
            if c == "(":
                head = "".join(out)
                match = _FUNCTION_NAME_REGEXP.search(head)
                before = head[match.start() - 1] if match and match.start() > 0 else " "
                # only a whole word is a function name, "1d20max(" is not
                if match and not (before.isalnum() or before == "$"):
                    fn = match.group(1)
                    out = [head[: match.start()]]
            groups.append(Group(c, fn, formula[i + 1 : end].strip()))
            out.append("$$F%d$$" % (len(groups) - 1))
            i = end + 1
        elif c in ")}":
            raise ParseError("unmatched '%s' in %s" % (c, formula))
        else:
            out.append(c)
            i += 1
    return "".join(out), groups


def split_top_level(text: str, separator: str = ",") -> typing.List[str]:
    """Split on ``separator`` outside of any brackets."""
    parts = []
    depth = 0
    current: typing.List[str] = []
    i = 0
    while i < len(text):
        c = text[i]
        if c == "[":
            end = _skip_flavor(text, i)
            current.append(text[i:end])
            i = end
            continue
        if c in "({":
            depth += 1
        elif c in ")}":
            depth -= 1
        if c == separator and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(c)
        i += 1
    parts.append("".join(current).strip())
    return parts


def split_tokens(formula: str) -> typing.List[str]:
    """Split a group-free formula into operator and value tokens.

    Spaces separate tokens as well, and a lone ``[flavor]`` token is
    attached to the token before it.
    """
    tokens: typing.List[str] = []
    current: typing.List[str] = []

    def flush():
        if current:
            tokens.append("".join(current))
            current.clear()

    i = 0
    while i < len(formula):
        c = formula[i]
        if c == "[":
            end = _skip_flavor(formula, i)
            current.append(formula[i:end])
            i = end
            continue
        if c in _OPERATORS:
            flush()
            tokens.append(c)
        elif c == " ":
            flush()
        else:
            current.append(c)
        i += 1
    flush()

    merged: typing.List[str] = []
    for token in tokens:
        if _FLAVOR_ONLY_REGEXP.match(token) and merged and merged[-1] not in _OPERATORS:
            merged[-1] += token
        else:
            merged.append(token)
    return merged


def classify_term(
    token: str, config: typing.Optional[EngineConfig] = None, adjacent: bool = False
) -> RollTerm:
    """Classify a single leaf token.

    ``adjacent`` tokens touch a group without an operator in between, as in
    ``(1d4)d6``. They can only be resolved after the group is evaluated, so
    dice-like text is kept as a StringTerm and numbers are rejected.
    """
    config = EngineConfig.default() if config is None else config
    if OperatorTerm.REGEXP.match(token):
        return OperatorTerm(token, config=config)
    match = NumericTerm.match_term(token)
    if match:
        if adjacent:
            raise ParseError("missing operator next to %s" % token)
        return NumericTerm.from_match(match, config)
    match = DiceTerm.match_term(token)
    if match and not adjacent:
        return DiceTerm.from_match(match, config)
    return StringTerm(token, config=config)


def _build_group(group: Group, suffix: str, config: EngineConfig) -> RollTerm:
    if group.kind == "{":
        match = _POOL_SUFFIX_REGEXP.match(suffix)
        modifier_text, flavor = match.groups() if match else (None, None)
    else:
        match = _FLAVOR_ONLY_REGEXP.match(suffix) if suffix else None
        flavor = match.group(1) if match else None
        modifier_text = None
    options = {"flavor": flavor} if flavor else None

    if group.kind == "(" and group.fn is None:
        parse_terms(group.inner, config)
        return ParentheticalTerm(term=group.inner, options=options, config=config)

    args = split_top_level(group.inner)
    if any(not arg for arg in args):
        raise ParseError("empty argument in %s" % group.inner)
    for arg in args:
        parse_terms(arg, config)
    if group.kind == "{":
        return PoolTerm(
            terms=args,
            modifiers=split_modifiers(modifier_text),
            options=options,
            config=config,
        )
    if group.fn not in config.math_functions:
        raise ParseError("unknown function %s" % group.fn)
    return MathTerm(group.fn, args, options=options, config=config)


def _classify_token(
    token: str, groups: typing.List[Group], config: EngineConfig
) -> typing.List[RollTerm]:
    """Classify a token that may contain placeholders."""
    if not PLACEHOLDER_REGEXP.search(token):
        return [classify_term(token, config)]

    pieces = [p for p in PLACEHOLDER_REGEXP.split(token) if p]
    terms: typing.List[RollTerm] = []
    i = 0
    while i < len(pieces):
        piece = pieces[i]
        index = _PLACEHOLDER_INDEX_REGEXP.match(piece)
        if index is None:
            terms.append(classify_term(piece, config, adjacent=True))
            i += 1
            continue
        group = groups[int(index.group(1))]
        suffix = ""
        following = pieces[i + 1] if i + 1 < len(pieces) else ""
        if following and not _PLACEHOLDER_INDEX_REGEXP.match(following):
            if group.kind == "{" and _POOL_SUFFIX_REGEXP.match(following):
                suffix = following
            elif _FLAVOR_ONLY_REGEXP.match(following):
                suffix = following
        terms.append(_build_group(group, suffix, config))
        i += 2 if suffix else 1
    return terms


def validate_terms(terms: typing.List[RollTerm], config: EngineConfig) -> typing.List[RollTerm]:
    """Check that values and operators alternate.

    A leading ``+`` or ``-`` gets an implicit ``0`` in front of it.
    """
    if not terms:
        raise ParseError("empty expression")
    first = terms[0]
    if isinstance(first, OperatorTerm):
        if first.operator not in "+-":
            raise ParseError("expression cannot start with '%s'" % first.operator)
        terms = [NumericTerm(0, config=config)] + terms
    if isinstance(terms[-1], OperatorTerm):
        raise ParseError("expression cannot end with '%s'" % terms[-1].operator)

    for prev, term in zip(terms, terms[1:]):
        prev_op = isinstance(prev, OperatorTerm)
        term_op = isinstance(term, OperatorTerm)
        if prev_op and term_op:
            raise ParseError("adjacent operators '%s%s'" % (prev.operator, term.operator))
        if not prev_op and not term_op:
            fused = (isinstance(prev, StringTerm) and term.is_intermediate) or (
                prev.is_intermediate and isinstance(term, StringTerm)
            )
            if not fused:
                raise ParseError("missing operator between %s and %s" % (prev.formula, term.formula))
    return terms


def parse_terms(formula: str, config: EngineConfig) -> typing.List[RollTerm]:
    """Parse a formula whose symbols were already substituted."""
    formula = re.sub(r"\s+", " ", formula).strip()
    if not formula:
        raise ParseError("empty expression")
    if "$" in formula:
        raise ParseError("unexpected '$' in %s" % formula)

    text, groups = extract_groups(formula)
    terms: typing.List[RollTerm] = []
    for token in split_tokens(text):
        terms.extend(_classify_token(token, groups, config))
    return validate_terms(terms, config)


def parse(
    formula: str,
    data: typing.Any = None,
    config: typing.Optional[EngineConfig] = None,
) -> ParsedFormula:
    """Parse ``formula``, substituting ``@symbols`` from ``data`` first."""
    if not isinstance(formula, str):
        raise ParseError("formula must be a string, not %s" % type(formula).__name__)
    config = EngineConfig.default() if config is None else config
    substituted = as_symbol_table(data).substitute(formula)
    normalized = re.sub(r"\s+", " ", substituted).strip()
    terms = parse_terms(normalized, config)
    logger.debug("parsed %r into %s", formula, terms)
    return ParsedFormula(terms, normalized)
