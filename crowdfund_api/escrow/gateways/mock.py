import base64
import json
import logging
import uuid

from .base import BaseEscrowGateway, EscrowGatewayError

logger = logging.getLogger(__name__)


class MockEscrowGateway(BaseEscrowGateway):
    """
    Development gateway that simulates the ledger without network calls.
    Unsigned transactions are base64 JSON envelopes; a signed transaction is accepted
    unless it contains the word ``reject``.
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        logger.warning("Mock escrow gateway enabled - ledger transactions are simulated")

    def _envelope(self, operation, **fields):
        body = json.dumps({'operation': operation, **fields}, default=str, sort_keys=True)
        return base64.b64encode(body.encode()).decode()

    def deploy_escrow(self, spec):
        unsigned = self._envelope(
            'deploy_multi_release',
            engagement_id=spec['engagement_id'],
            signer=spec['signer'],
            milestones=len(spec['milestones']),
        )
        logger.info(f"Mock escrow deployment built for engagement {spec['engagement_id']}")
        return {'unsigned_transaction': unsigned, 'status': 'success'}

    def submit_transaction(self, signed_transaction):
        if 'reject' in signed_transaction:
            raise EscrowGatewayError("Signed transaction was not accepted: invalid signature")

        contract_id = f"C{uuid.uuid4().hex.upper()[:55]}"
        tx_hash = uuid.uuid4().hex + uuid.uuid4().hex
        logger.info(f"Mock transaction submitted. Contract: {contract_id}")
        return {
            'status': 'success',
            'message': 'The transaction has been successfully sent to the Stellar network',
            'contract_id': contract_id,
            'hash': tx_hash,
            'escrow': {'contractId': contract_id},
        }

    def fund_escrow(self, contract_id, amount, signer):
        unsigned = self._envelope('fund_escrow', contract_id=contract_id, amount=amount, signer=signer)
        return {'unsigned_transaction': unsigned, 'status': 'success'}

    def release_milestone_funds(self, contract_id, milestone_index, signer):
        unsigned = self._envelope(
            'release_milestone_funds',
            contract_id=contract_id,
            milestone_index=milestone_index,
            signer=signer,
        )
        return {'unsigned_transaction': unsigned, 'status': 'success'}
