"""
Tamuu Kernel — the template engine.

Components:
  types      — document model (Template → SectionDesign → TemplateElement)
  scaling    — logical canvas to target geometry, editor and responsive modes
  animation  — entrance/loop resolution and the per-element visibility machine
  session    — in-memory editing with dirty tracking
  canvas     — interactive editor canvas against an abstract Surface
  sync       — persistence synchronizer (retry, batching, write-back)
  renderer   — public presentation renderer (Template → HTML)
"""

from engine.kernel.errors import TemplateEngineError
from engine.kernel.renderer import RenderOptions, render_template, render_terminal
from engine.kernel.session import DocumentSession
from engine.kernel.sync import TemplateSynchronizer
from engine.kernel.types import SectionDesign, Template, parse_element, parse_template

__all__ = [
    "Template",
    "SectionDesign",
    "parse_element",
    "parse_template",
    "DocumentSession",
    "TemplateSynchronizer",
    "RenderOptions",
    "render_template",
    "render_terminal",
    "TemplateEngineError",
]
