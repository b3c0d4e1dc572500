"""
Default expression evaluator for transitions and node transformations.

Expressions are Jinja2 templates rendered with a native-types environment,
so ``{{ {"to": [[from[0] ~ " World"]]} }}`` evaluates to a Python dict
instead of its string form. Statements such as ``{% set %}`` can precede the
final expression; the line breaks they leave are trimmed.

A template consisting of one expression returns that value untouched, so
``{{ result }}`` is an identity even for strings such as ``"42"``. Several
output nodes are joined into a string.
"""

import re
from itertools import chain, islice
from typing import Any, Dict, Mapping

import jinja2
from jinja2 import nodes
from jinja2.nativetypes import NativeCodeGenerator, NativeEnvironment, NativeTemplate


class ExpressionError(Exception):
    """An expression failed while being evaluated."""


class ExpressionSyntaxError(ExpressionError):
    """An expression could not be compiled."""


def regex_replace(s, pattern, repl, ignorecase=False, dotall=False):
    flags = 0
    if ignorecase:
        flags |= re.IGNORECASE
    if dotall:
        flags |= re.DOTALL
    return re.sub(pattern, repl, s, flags=flags)


def regex_findall(s, pattern, ignorecase=False, dotall=False):
    flags = 0
    if ignorecase:
        flags |= re.IGNORECASE
    if dotall:
        flags |= re.DOTALL
    return re.findall(pattern, s, flags=flags)


def expression_concat(values):
    """Return a lone output node as is; join several as text. Never re-parses strings."""
    values = iter(values)
    head = list(islice(values, 2))
    if not head:
        return None
    if len(head) == 1:
        return head[0]
    return "".join(str(v) for v in chain(head, values))


class ExpressionCodeGenerator(NativeCodeGenerator):
    """Evaluates every expression at render time.

    Jinja2 folds constant expressions into their string form while
    compiling, which would turn ``{{ [1, 2] }}`` into ``"[1, 2]"``. Only
    literal template text is folded here.
    """

    def _output_child_to_const(self, node, frame, finalize):
        if not isinstance(node, nodes.TemplateData):
            raise nodes.Impossible()
        return super()._output_child_to_const(node, frame, finalize)


class ExpressionTemplate(NativeTemplate):
    pass


class ExpressionEnvironment(NativeEnvironment):
    code_generator_class = ExpressionCodeGenerator
    concat = staticmethod(expression_concat)


ExpressionTemplate.environment_class = ExpressionEnvironment
ExpressionEnvironment.template_class = ExpressionTemplate


class TemplateEvaluator:
    """
    Evaluates expressions against a mapping of input values.

    Compiled templates are cached per expression string, so a connection
    firing inside a loop compiles its transition only once.
    """

    def __init__(self, env: ExpressionEnvironment = None):
        self.env = env or ExpressionEnvironment(trim_blocks=True, lstrip_blocks=True)
        self.env.filters['regex_replace'] = regex_replace
        self.env.filters['regex_findall'] = regex_findall
        self._cache: Dict[str, jinja2.Template] = {}

    def compile(self, expression: str) -> jinja2.Template:
        template = self._cache.get(expression)
        if template is None:
            try:
                template = self.env.from_string(expression)
            except jinja2.TemplateSyntaxError as e:
                raise ExpressionSyntaxError(f"Syntax error: {e.message} (line {e.lineno})") from e
            self._cache[expression] = template
        return template

    async def evaluate(self, expression: str, data: Mapping[str, Any]) -> Any:
        template = self.compile(expression)
        try:
            output = template.render(dict(data))
        except Exception as e:
            raise ExpressionError(f"{type(e).__name__}: {e}") from e
        if isinstance(output, jinja2.Undefined):
            return None
        return output
