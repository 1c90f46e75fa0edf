"""Shared domain helpers."""

from .errors import AuthenticationError, DropReason, ExternalCallFailure, InfrastructureFailure, PolicyError

__all__ = [
	"AuthenticationError",
	"DropReason",
	"ExternalCallFailure",
	"InfrastructureFailure",
	"PolicyError",
]
