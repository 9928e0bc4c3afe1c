"""Client validation package."""

from clientverse.validation.validator import ClientValidator, format_field_path

__all__ = ["ClientValidator", "format_field_path"]
