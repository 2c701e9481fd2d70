"""Exceptions raised by TemplateSync."""

from __future__ import annotations


class TemplateSyncError(Exception):
    """Base class for all TemplateSync errors."""


class TemplateConfigError(TemplateSyncError):
    """The template folder could not be determined."""


class ConfigUnavailable(TemplateConfigError):
    """The templates config file is missing or unreadable."""


class ConfigMalformed(TemplateConfigError):
    """The templates config file does not name a usable folder."""


class FrontmatterError(TemplateSyncError):
    """A frontmatter block could not be parsed."""


class DependentWriteFailed(TemplateSyncError):
    """Persisting a patched dependent document failed."""

    def __init__(self, doc_id: str, reason: str) -> None:
        super().__init__(f"Failed to update {doc_id}: {reason}")
        self.doc_id = doc_id
        self.reason = reason
