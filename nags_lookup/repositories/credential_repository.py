from typing import Optional
from datetime import datetime

from beanie.operators import Inc, Set

from nags_lookup.models.distributor_credential import DistributorCredential
from nags_lookup.schemas.records import DistributorCredentialRecord


class CredentialRepository:
    """Stored distributor logins plus success/failure bookkeeping."""

    async def get_active(self, distributor: str) -> Optional[DistributorCredentialRecord]:
        credential = await DistributorCredential.find_one(
            DistributorCredential.distributor == distributor,
            DistributorCredential.is_active == True,  # noqa: E712
        )
        if not credential:
            return None
        return DistributorCredentialRecord.model_validate(credential)

    async def record_success(self, distributor: str) -> None:
        now = datetime.utcnow()
        await DistributorCredential.find_one(DistributorCredential.distributor == distributor).update(
            Set({
                DistributorCredential.last_success_at: now,
                DistributorCredential.failure_count: 0,
                DistributorCredential.updated_at: now,
            })
        )

    async def record_failure(self, distributor: str, error: str) -> None:
        now = datetime.utcnow()
        await DistributorCredential.find_one(DistributorCredential.distributor == distributor).update(
            Inc({DistributorCredential.failure_count: 1}),
            Set({
                DistributorCredential.last_failure_at: now,
                DistributorCredential.last_error: error[:500],
                DistributorCredential.updated_at: now,
            }),
        )
