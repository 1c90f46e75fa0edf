"""Read-only view of a member profile used by chat and matching."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class Profile:
	user_id: int
	handle: str
	locality: Optional[str] = None
	push_address: Optional[str] = None
	is_premium: bool = False

	@classmethod
	def from_record(cls, row) -> "Profile":
		return cls(
			user_id=int(row["user_id"]),
			handle=str(row["handle"]),
			locality=row["timezone"],
			push_address=row["expo_push_token"],
			is_premium=bool(row["is_premium"]),
		)
