"""Error taxonomy shared by the realtime and matching paths."""

from __future__ import annotations

import enum


class AuthenticationError(RuntimeError):
	"""Credential missing, malformed, expired or not backed by a known user."""

	def __init__(self, code: str = "invalid_token") -> None:
		super().__init__(code)
		self.code = code


class ExternalCallFailure(RuntimeError):
	"""A collaborator (comparator, analyzer, push, directory) failed."""

	def __init__(self, collaborator: str, message: str | None = None) -> None:
		super().__init__(message or f"{collaborator}_failed")
		self.collaborator = collaborator


class InfrastructureFailure(RuntimeError):
	"""The relational store (or another required backend) is unreachable."""


class PolicyError(RuntimeError):
	def __init__(self, code: str, *, status_code: int = 400, message: str | None = None) -> None:
		super().__init__(message or code)
		self.code = code
		self.status_code = status_code
		self.detail = message or code


class DropReason(str, enum.Enum):
	"""Why an inbound event was silently discarded."""

	VALIDATION = "validation"
	AUTHORIZATION = "authorization"
