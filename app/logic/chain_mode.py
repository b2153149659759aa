"""How an Approval record is ordered inside its rule's chain."""
from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class Sequential:
    order: int


@dataclass(frozen=True)
class Parallel:
    pass


ChainMode = Union[Sequential, Parallel]


def chain_mode_from_order(sequence_order: Optional[int]) -> ChainMode:
    if sequence_order is None:
        return Parallel()
    return Sequential(sequence_order)


def order_for_mode(mode: ChainMode) -> Optional[int]:
    if isinstance(mode, Sequential):
        return mode.order
    if isinstance(mode, Parallel):
        return None
    raise TypeError(f"Unknown chain mode: {mode!r}")
