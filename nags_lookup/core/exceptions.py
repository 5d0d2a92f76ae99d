"""
Lookup engine exceptions.

Adapters raise these internally; they are caught at each tier's public
boundary and never escape NAGSLookupOrchestrator.lookup().
"""


class NagsLookupError(Exception):
    """Base class for lookup engine errors"""


class DistributorError(NagsLookupError):
    """Exception raised when a distributor portal fails"""
    def __init__(self, distributor: str, error: str):
        self.distributor = distributor
        self.error = error
        super().__init__(f"{distributor} lookup failed: {error}")


class DistributorAuthError(DistributorError):
    """Login to a distributor portal was rejected"""


class OmegaServiceError(NagsLookupError):
    """Omega EDI API returned an unusable response"""


class EscalationStateError(NagsLookupError):
    """Raised when an escalation entry cannot move to the requested status"""
    def __init__(self, entry_id: str, status: str, target: str):
        self.entry_id = entry_id
        self.status = status
        super().__init__(f"Escalation {entry_id} is {status}, cannot move to {target}")


class EscalationPositionError(NagsLookupError):
    """Resolved parts name glass positions the escalation entry never asked for"""
    def __init__(self, entry_id: str, positions: list):
        self.entry_id = entry_id
        self.positions = positions
        if positions:
            super().__init__(f"Escalation {entry_id} was not queued for: {', '.join(positions)}")
        else:
            super().__init__(f"Escalation {entry_id}: no resolved parts given")
