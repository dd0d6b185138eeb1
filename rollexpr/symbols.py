import re
import typing

from rollexpr.errors import UnknownSymbol

SYMBOL_REGEXP = re.compile(r"@([A-Za-z0-9_\-]+(?:\.[A-Za-z0-9_\-]+)*)")


def format_value(value: typing.Any) -> str:
    """Render a symbol value the way it is spliced into a formula.

    Negative numbers are parenthesized so ``1d20 - @penalty`` with a
    penalty of -2 stays a valid formula.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return "{" + ",".join(format_value(x) for x in value) + "}"
    if isinstance(value, (int, float)):
        text = str(int(value)) if isinstance(value, float) and value.is_integer() else str(value)
        return "(%s)" % text if value < 0 else text
    return str(value).strip()


class SymbolTable:
    """A read-only nested mapping used to resolve ``@name.sub`` references."""

    def __init__(self, data: typing.Optional[typing.Mapping[str, typing.Any]] = None):
        self.data = {} if data is None else data

    def lookup(self, path: str) -> typing.Any:
        node: typing.Any = self.data
        for key in path.split("."):
            if isinstance(node, SymbolTable):
                node = node.data
            if isinstance(node, typing.Mapping) and key in node:
                node = node[key]
            elif isinstance(node, (list, tuple)) and key.isdigit() and int(key) < len(node):
                node = node[int(key)]
            else:
                raise UnknownSymbol(path)
        if isinstance(node, SymbolTable):
            node = node.data
        if node is None or isinstance(node, typing.Mapping):
            raise UnknownSymbol(path)
        return node

    def substitute(self, formula: str) -> str:
        return SYMBOL_REGEXP.sub(
            lambda m: format_value(self.lookup(m.group(1))), formula
        )

    def __contains__(self, path: str) -> bool:
        try:
            self.lookup(path)
        except UnknownSymbol:
            return False
        return True

    def __repr__(self) -> str:
        return "SymbolTable(%r)" % (self.data,)


def as_symbol_table(data: typing.Any) -> SymbolTable:
    if isinstance(data, SymbolTable):
        return data
    return SymbolTable(data)
