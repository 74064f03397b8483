# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base model for records persisted in the shared document store."""

from typing import Any, Self

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class DocumentModel(BaseModel):
    """Pydantic model persisted with camelCase field names.

    Documents are shared with the mobile clients, so the stored shape uses
    the clients' camelCase names while Python code uses snake_case.
    Unknown fields written by older clients are ignored on read.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_document(self) -> dict[str, Any]:
        """Serialize to the stored document shape."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> Self:
        """Build a model from a stored document."""
        return cls.model_validate(data)
