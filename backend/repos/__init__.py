"""
Repository layer for Tamuu.

All SQL lives here and ONLY here. No database access outside this module.
"""

from backend.repos.template_repo import TemplateRepo, template_repo

__all__ = [
    "TemplateRepo",
    "template_repo",
]
