"""
Scavenger rights consolidator for Midnight / Cardano.

Selects donor addresses with user solutions from the local receipts log,
signs "Assign accumulated Scavenger rights to: <recipient>" for each donor,
and calls the Scavenger API /donate_to/<recipient>/<donor>/<signature>, or
returns equivalent curl commands on a dry run.
"""

from .errors import (
    AuthenticationError,
    ConsolidationError,
    NotFoundError,
    SigningError,
    ValidationError,
)
from .models import (
    ConsolidationRequest,
    DerivedAddress,
    DonorCandidate,
    ProofRequest,
    ProofResult,
    Receipt,
)
from .orchestrator import Consolidator

__version__ = "0.1.0"
