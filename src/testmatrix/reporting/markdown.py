"""Markdown rendering of the summary document through Jinja2."""

from datetime import datetime
from typing import Optional, Union

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError
from loguru import logger

from ..core.utils import PathLike, atomic_write_text
from ..exceptions import ReportError
from .summary import SummaryDocument

DEFAULT_TEMPLATE = "summary.md.j2"


def _mark_filter(value: Optional[bool]) -> str:
    if value is None:
        return "-"
    return "✅" if value else "❌"


def _number_filter(value: Union[int, float]) -> str:
    """Integers without a trailing ``.0``, other floats with two decimals."""
    if isinstance(value, float) and not value.is_integer():
        return f"{value:.2f}"
    return str(int(value))


def _timestamp_filter(value: datetime) -> str:
    return value.isoformat()


def create_environment() -> Environment:
    """Jinja2 environment over the packaged templates."""
    env = Environment(
        loader=PackageLoader("testmatrix", "reporting/templates"),
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=StrictUndefined,
    )
    env.filters.update({
        'mark': _mark_filter,
        'number': _number_filter,
        'timestamp': _timestamp_filter,
    })
    return env


def render_markdown(document: SummaryDocument, template_name: str = DEFAULT_TEMPLATE) -> str:
    """
    Render ``document`` to Markdown.

    Raises:
        ReportError: REPORT_001 if the template fails to render
    """
    try:
        template = create_environment().get_template(template_name)
        return template.render(doc=document)
    except TemplateError as e:
        raise ReportError(
            f"Failed to render summary template '{template_name}': {e}",
            error_code="REPORT_001",
            context={"template": template_name},
        ) from e


def write_markdown(document: SummaryDocument, path: PathLike) -> str:
    """
    Render and write the summary document.

    Raises:
        ReportError: REPORT_001 on rendering failure, REPORT_002 on write failure
    """
    content = render_markdown(document)
    try:
        atomic_write_text(path, content)
    except (OSError, ValueError) as e:
        raise ReportError(
            f"Failed to write summary report: {path}",
            error_code="REPORT_002",
            context={"path": str(path), "error": str(e)},
        ) from e
    logger.info(f"Summary report written to {path}")
    return content
