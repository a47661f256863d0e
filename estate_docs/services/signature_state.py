import uuid
from typing import Iterable

from models.enums import SignatureStatus
from models.models import SignatureRequest


def latest_per_signer(
    requests: Iterable[SignatureRequest],
) -> dict[uuid.UUID, SignatureRequest]:
    """Most recent request for each signer.

    Ties on created_at go to the request that was not replaced by a resend,
    then to a non-expired one.
    """
    requests = list(requests)
    replaced = {r.replaces_id for r in requests if r.replaces_id}

    def rank(request: SignatureRequest):
        return (
            request.created_at,
            request.id not in replaced,
            request.status != SignatureStatus.EXPIRED,
        )

    latest: dict[uuid.UUID, SignatureRequest] = {}
    for request in requests:
        current = latest.get(request.signer_id)
        if current is None or rank(request) > rank(current):
            latest[request.signer_id] = request
    return latest


def all_signed(requests: Iterable[SignatureRequest]) -> bool:
    latest = latest_per_signer(requests)
    return bool(latest) and all(
        r.status == SignatureStatus.SIGNED for r in latest.values()
    )
