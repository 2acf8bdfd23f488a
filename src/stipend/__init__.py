"""
Stipend: recurring payment covenants.

A payer locks funds that a payee may withdraw up to a fixed amount per
window; the payer can revoke at any time:
Payer sets the allowance → Payee withdraws within it → Every spend commits to the next state.
"""

__version__ = "0.1.0"

from .accountant import AllowanceOutcome, WindowStatus, next_allowance
from .codec import (
    contract_commitment,
    decode_contract,
    decode_parameters,
    decode_state,
    encode_contract,
    encode_parameters,
    encode_state,
)
from .config import LedgerRules
from .contract import ContractParameters, ContractState, SpenderPolicy, deploy
from .covenant import (
    CovenantValidator,
    Outcome,
    Verdict,
    covenant_destination,
    propose_revoke,
    propose_spend,
)
from .errors import (
    AccumulationMismatchError,
    AuthorizationError,
    CodecError,
    CovenantError,
    OutputMismatchError,
    RangeError,
    StipendError,
    TimingError,
)
from .guard import Actor, Authorization, authorize
from .transaction import CandidateTransaction, Destination, DestinationKind, SpendPath, TxOutput

__all__ = [
    "ContractParameters", "ContractState", "SpenderPolicy", "deploy", "LedgerRules",
    "encode_parameters", "encode_state", "encode_contract",
    "decode_parameters", "decode_state", "decode_contract", "contract_commitment",
    "next_allowance", "AllowanceOutcome", "WindowStatus",
    "authorize", "Authorization", "Actor",
    "CandidateTransaction", "Destination", "DestinationKind", "SpendPath", "TxOutput",
    "CovenantValidator", "Verdict", "Outcome", "covenant_destination",
    "propose_spend", "propose_revoke",
    "StipendError", "CodecError", "CovenantError", "AuthorizationError", "RangeError",
    "TimingError", "AccumulationMismatchError", "OutputMismatchError",
]
