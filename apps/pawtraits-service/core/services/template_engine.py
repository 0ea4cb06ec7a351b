"""
Message template rendering.

Templates are stored in `message_templates` and rendered with a sandboxed
Jinja2 environment, since template bodies are editable from the admin back
office. Amounts are passed in pence and formatted with the `currency` filter:

    Hello {{ customer_name }}, your total is {{ total_amount | currency }}
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from jinja2 import TemplateError, meta
from jinja2.sandbox import SandboxedEnvironment

from core.utils.money import format_money

logger = logging.getLogger(__name__)


class TemplateRenderError(Exception):
    """Raised when a message template fails to compile or render."""


def _coerce_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def currency_filter(amount: Any, code: str = "GBP") -> str:
    try:
        pence = int(amount or 0)
    except (TypeError, ValueError):
        return str(amount)
    return format_money(pence, code)


def format_date_filter(value: Any, fmt: str = "short") -> str:
    try:
        d = _coerce_datetime(value)
    except ValueError:
        return str(value)
    if d is None:
        return ""
    if fmt == "short":
        return f"{d.day} {d:%b %Y}"
    if fmt == "long":
        return f"{d.day} {d:%B %Y}"
    if fmt == "time":
        return f"{d:%H:%M}"
    return f"{d:%d/%m/%Y}"


def _capitalize(value: Any) -> str:
    text = "" if value is None else str(value)
    return text[:1].upper() + text[1:].lower()


def _build_environment(autoescape: bool) -> SandboxedEnvironment:
    env = SandboxedEnvironment(autoescape=autoescape)
    env.filters["currency"] = currency_filter
    env.filters["format_date"] = format_date_filter
    env.filters["uppercase"] = lambda v: "" if v is None else str(v).upper()
    env.filters["lowercase"] = lambda v: "" if v is None else str(v).lower()
    env.filters["capitalize"] = _capitalize
    return env


_text_env = _build_environment(autoescape=False)
_html_env = _build_environment(autoescape=True)


def _env(html: bool) -> SandboxedEnvironment:
    return _html_env if html else _text_env


def render_template(template: str, variables: Dict[str, Any], html: bool = False) -> str:
    """Render ``template`` with ``variables``; raise TemplateRenderError on failure."""
    try:
        return _env(html).from_string(template).render(**variables)
    except TemplateError as exc:
        logger.error("template_render_failed error=%s", exc)
        raise TemplateRenderError(f"Template rendering failed: {exc}") from exc


def render_batch(templates: Dict[str, str], variables: Dict[str, Any], html: bool = False) -> Dict[str, str]:
    """Render several named templates with the same variables."""
    return {name: render_template(source, variables, html=html) for name, source in templates.items()}


def extract_variables(template: str) -> Set[str]:
    """Return the top-level variable names referenced by a template."""
    try:
        ast = _text_env.parse(template)
    except TemplateError as exc:
        raise TemplateRenderError(f"Template parse failed: {exc}") from exc
    return set(meta.find_undeclared_variables(ast))


def validate_template_variables(
    template: str,
    variables: Dict[str, Any],
    required_vars: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    """Check that every required (or referenced) variable is provided."""
    to_check = list(required_vars) if required_vars is not None else sorted(extract_variables(template))
    missing: List[str] = [name for name in to_check if name not in variables]
    return {"valid": not missing, "missing": missing}


def test_template(template: str, sample_variables: Dict[str, Any], html: bool = False) -> Dict[str, Any]:
    """Render with sample data for admin previews. Never raises."""
    try:
        validation = validate_template_variables(template, sample_variables) if template else {"missing": []}
        rendered = render_template(template or "", sample_variables, html=html)
    except TemplateRenderError as exc:
        return {"success": False, "rendered": None, "missing": [], "error": str(exc)}
    return {"success": True, "rendered": rendered, "missing": validation["missing"], "error": None}
