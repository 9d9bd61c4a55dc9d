"""
Candidate disambiguation for Rota Express.

After an address has been resolved, exactly one of three things happens:

    AutoCommit          – one candidate: use it straight away.
    PromptUser          – several candidates: the courier picks one.
    FallbackManualEntry – none: reopen the text field with the query.

``disambiguate`` makes that decision. It is a pure function; applying
the decision to the stop store is the caller's job.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

from rotaexpress.geocode import AddressCandidate


class Target(enum.Enum):
    STOP = "stop"  # append a new stop
    ORIGIN = "origin"  # set the explicit origin
    EDIT = "edit"  # overwrite an existing stop in place


@dataclass(frozen=True)
class AutoCommit:
    candidate: AddressCandidate
    target: Target = Target.STOP


@dataclass(frozen=True)
class PromptUser:
    candidates: Tuple[AddressCandidate, ...]
    target: Target = Target.STOP

    def choose(self, index: int) -> AutoCommit:
        """Turn the courier's pick into a commit decision.

        Raises:
            IndexError: If ``index`` does not name one of the candidates.
        """
        if not 0 <= index < len(self.candidates):
            raise IndexError(f"Candidate {index} out of range (0..{len(self.candidates) - 1})")
        return AutoCommit(self.candidates[index], self.target)


@dataclass(frozen=True)
class FallbackManualEntry:
    raw_text: str
    target: Target = Target.STOP


Decision = Union[AutoCommit, PromptUser, FallbackManualEntry]


def disambiguate(candidates: Sequence[AddressCandidate], target: Target = Target.STOP, raw_text: str = "") -> Decision:
    """Decide what to do with a resolved candidate list.

    Args:
        candidates: Output of ``AddressResolver.resolve``, in order.
        target: What a committed candidate will become.
        raw_text: The original query, used to pre-fill manual entry.

    Returns:
        ``AutoCommit`` for one candidate, ``PromptUser`` with every
        candidate in the original order for several, and
        ``FallbackManualEntry`` for none.
    """
    if len(candidates) == 1:
        return AutoCommit(candidates[0], target)
    if len(candidates) > 1:
        return PromptUser(tuple(candidates), target)
    return FallbackManualEntry(raw_text, target)
