"""
Commitment hashing: the Poseidon2 committers and the commitment binder.
"""

from zkpoker.crypto.commitment import Commitment, CommitmentVault, bind, generate_salt
from zkpoker.crypto.poseidon import CircuitCommitter, NargoCommitter

__all__ = ["Commitment", "CommitmentVault", "bind", "generate_salt", "CircuitCommitter", "NargoCommitter"]
