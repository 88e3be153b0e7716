"""Deterministic thread identity for two-party conversations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from .exceptions import InvalidParticipantError, SelfThreadError

THREAD_ID_SEPARATOR = "_"


def _validate_participant(value: str) -> str:
	participant = str(value or "").strip()
	if not participant:
		raise InvalidParticipantError("empty_participant")
	if THREAD_ID_SEPARATOR in participant:
		# would make "a_b"+"c" and "a"+"b_c" collide
		raise InvalidParticipantError("separator_in_participant")
	return participant


@dataclass(frozen=True, slots=True)
class ThreadKey:
	"""Canonical representation of a 1:1 thread."""

	user_a: str
	user_b: str

	@classmethod
	def from_participants(cls, user_one: str, user_two: str) -> "ThreadKey":
		first = _validate_participant(user_one)
		second = _validate_participant(user_two)
		if first == second:
			raise SelfThreadError()
		ordered = tuple(sorted((first, second)))
		return cls(user_a=ordered[0], user_b=ordered[1])

	@classmethod
	def parse(cls, value: str) -> "ThreadKey":
		first, sep, second = str(value or "").partition(THREAD_ID_SEPARATOR)
		if not sep:
			raise InvalidParticipantError("malformed_thread_id")
		key = cls.from_participants(first, second)
		if key.thread_id != value:
			raise InvalidParticipantError("malformed_thread_id")
		return key

	@property
	def thread_id(self) -> str:
		return f"{self.user_a}{THREAD_ID_SEPARATOR}{self.user_b}"

	def participants(self) -> Tuple[str, str]:
		return (self.user_a, self.user_b)

	def other(self, user_id: str) -> str:
		if user_id == self.user_a:
			return self.user_b
		if user_id == self.user_b:
			return self.user_a
		raise InvalidParticipantError("not_a_member")


def thread_id(user_one: str, user_two: str) -> str:
	"""Return the same id whichever participant initiates."""
	return ThreadKey.from_participants(user_one, user_two).thread_id
