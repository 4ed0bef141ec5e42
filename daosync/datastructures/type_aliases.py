"""
Semantic type aliases for daosync datastructures.

These aliases keep signatures self-documenting where raw ``str``/``int``
would otherwise hide whether a value is an address, an on-ledger amount
or a proposal number.
"""

from typing import TypeAlias

# Time types
Timestamp: TypeAlias = float
DurationSeconds: TypeAlias = float

# Ledger identifiers
AccountAddress: TypeAlias = str
ContractAddress: TypeAlias = str
ModuleName: TypeAlias = str
FunctionId: TypeAlias = str  # fully qualified: <address>::<module>::<function>
TransactionHash: TypeAlias = str
AttemptId: TypeAlias = str

# Amounts are always integers in the smallest ledger unit (octas)
Octas: TypeAlias = int
VoteCount: TypeAlias = int

# Proposal numbering starts at 1 and is dense up to the treasury count
ProposalNumber: TypeAlias = int
ProposalCount: TypeAlias = int

# Hint storage
HintName: TypeAlias = str
HintValue: TypeAlias = str
