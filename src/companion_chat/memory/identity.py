"""Partition key shared by every memory operation."""

from __future__ import annotations

from dataclasses import dataclass

from ..exceptions import ValidationError


@dataclass(frozen=True)
class IdentityKey:
    """(persona, model, user) triple that partitions short-term history."""

    persona_id: str
    model_id: str
    user_id: str

    def is_valid(self) -> bool:
        return all(
            isinstance(value, str) and value.strip()
            for value in (self.persona_id, self.model_id, self.user_id)
        )

    def require_valid(self) -> None:
        """Raise ValidationError naming the first empty field."""
        for field_name in ("persona_id", "model_id", "user_id"):
            value = getattr(self, field_name)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(field_name, "must be a non-empty string")

    @property
    def storage_key(self) -> str:
        return f"chat:{self.persona_id}:{self.model_id}:{self.user_id}"
