"""
Program Index: read-only facts that span instructions.

Most rules only look at one instruction. Two questions need the whole
program: where else is the same seeded address initialized, and is a slot
used by instructions signed by someone else. The index is computed once
from the raw model and never changes, so instructions can still be
evaluated independently and in parallel.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Tuple

from .models import ProgramModel, SeedsBump


@dataclass(frozen=True)
class InitSite:
    """An account initialized from seeds by some instruction."""
    position: int
    instruction: str
    slot: str
    seeds: Tuple[str, ...]


def normalize_seeds(seeds: Tuple[str, ...]) -> Tuple[str, ...]:
    return tuple("".join(seed.split()) for seed in seeds)


class ProgramIndex:
    """Cross-instruction lookups over a ProgramModel."""

    def __init__(self, program: ProgramModel):
        self.program_name = program.name
        self._positions: Dict[str, int] = {}
        self._init_sites: Dict[Tuple[str, ...], List[InitSite]] = {}
        self._slot_usage: Dict[str, List[Tuple[str, FrozenSet[str]]]] = {}

        for position, ix in enumerate(program.instructions):
            self._positions.setdefault(ix.name, position)
            signers = frozenset(ix.signers)
            for acc in ix.accounts:
                self._slot_usage.setdefault(acc.name, []).append((ix.name, signers))
                if not acc.is_init:
                    continue
                seeds = acc.constraints_of(SeedsBump)
                if not seeds:
                    continue
                key = normalize_seeds(seeds[0].seeds)
                self._init_sites.setdefault(key, []).append(InitSite(
                    position=position,
                    instruction=ix.name,
                    slot=acc.name,
                    seeds=seeds[0].seeds,
                ))

    def position(self, instruction: str) -> int:
        return self._positions.get(instruction, len(self._positions))

    def __contains__(self, instruction: str) -> bool:
        return instruction in self._positions

    def init_sites(self, seeds: Tuple[str, ...]) -> List[InitSite]:
        return list(self._init_sites.get(normalize_seeds(seeds), []))

    def earlier_init_sites(self, seeds: Tuple[str, ...], instruction: str) -> List[InitSite]:
        """Init sites with the same seeds in instructions declared before this one."""
        here = self.position(instruction)
        return [site for site in self.init_sites(seeds) if site.position < here]

    def is_shared(self, slot: str, instruction: str, signers: FrozenSet[str]) -> bool:
        """
        True if another instruction uses the slot under unrelated signers.

        Instructions without any signer do not count: they do not
        introduce a different authority.
        """
        for other, other_signers in self._slot_usage.get(slot, []):
            if other == instruction or not other_signers:
                continue
            if not (other_signers & signers):
                return True
        return False
