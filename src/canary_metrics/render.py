"""Query template rendering.

Templates use ``{{ placeholder }}`` markers bound to the fields of a
``MetricTemplateModel``:

    {{ name }} {{ namespace }} {{ target }} {{ service }} {{ ingress }}
    {{ interval }} {{ variables.<key> }}

``{{-`` and ``-}}`` trim markers are accepted. After substitution every run
of whitespace (newlines and indentation included) is collapsed to a single
space and the result is stripped, so a multi-line template yields a
single-line query. Substituted values are inserted verbatim.

Rendering is a pure function of its inputs.
"""

from __future__ import annotations

import re

from canary_metrics.errors import TemplateError
from canary_metrics.models import MetricTemplateModel

_FIELDS = frozenset({"name", "namespace", "target", "service", "ingress", "interval"})

_ACTION = re.compile(r"\{\{(-?)(.*?)(-?)\}\}", re.DOTALL)
_VARIABLE = re.compile(r"variables\.([A-Za-z0-9_\-]+)")
_WHITESPACE = re.compile(r"\s+")


def _resolve(expr: str, model: MetricTemplateModel, template: str) -> str:
    expr = expr.strip()
    if not expr:
        raise TemplateError("empty placeholder '{{ }}'", template)
    if expr in _FIELDS:
        return getattr(model, expr)

    match = _VARIABLE.fullmatch(expr)
    if match is not None:
        key = match.group(1)
        try:
            return model.variables[key]
        except KeyError:
            raise TemplateError(f"variable '{key}' is not defined", template) from None

    raise TemplateError(f"unknown placeholder '{{{{ {expr} }}}}'", template)


def render_query(template: str, model: MetricTemplateModel) -> str:
    """Expand ``template`` against ``model`` and return a single-line query.

    Raises:
        TemplateError: on an unknown, empty or unterminated placeholder, or a
            ``variables.<key>`` reference missing from ``model.variables``.
    """
    parts: list[str] = []
    pos = 0
    for match in _ACTION.finditer(template):
        parts.append(template[pos : match.start()])
        parts.append(_resolve(match.group(2), model, template))
        pos = match.end()

    tail = template[pos:]
    if "{{" in tail:
        raise TemplateError("unterminated placeholder", template)
    parts.append(tail)

    return _WHITESPACE.sub(" ", "".join(parts)).strip()
