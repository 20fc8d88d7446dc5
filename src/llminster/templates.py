# llminster: Renders .razorq prompt templates with Jinja2. Templates get an empty model, so they are useful for includes-free macros, loops and filters rather than data binding.

from typing import Any, Dict, Optional

from jinja2 import Environment, StrictUndefined, TemplateError

from .errors import TemplateRenderError

_ENV = Environment(undefined=StrictUndefined, autoescape=False, keep_trailing_newline=True)


def render_template(template_text: str, name: str = "<template>", model: Optional[Dict[str, Any]] = None) -> str:
    """
    Render template_text and return the prompt text.

    Raises:
        TemplateRenderError: On syntax errors or undefined variables.
    """
    try:
        return _ENV.from_string(template_text).render(**(model or {}))
    except TemplateError as e:
        raise TemplateRenderError(f"Failed to render template {name}: {e}") from e
