import logging

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from django.conf import settings

from .base import BaseEscrowGateway, EscrowGatewayError

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = {'success', 'successful'}


class TrustlessWorkGateway(BaseEscrowGateway):
    """
    Escrow gateway backed by the Trustless Work REST API.

    Calls that only build an unsigned transaction are retried on connection errors,
    read errors and 502/503/504. ``submit_transaction`` is retried on connection
    errors only: once the request reached the ledger a timeout is ambiguous and is
    reported as a failure.
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        config = {**settings.ESCROW_GATEWAY, **kwargs}
        self.base_url = config['BASE_URL'].rstrip('/')
        self.api_key = config['API_KEY']
        self.timeout = config['TIMEOUT']
        self.max_retries = config['MAX_RETRIES']
        self.backoff_factor = config['BACKOFF_FACTOR']

        if not self.api_key:
            raise EscrowGatewayError("TRUSTLESS_WORK_API_KEY is not configured")

        self.session = self._build_session(Retry(
            total=self.max_retries,
            connect=self.max_retries,
            read=self.max_retries,
            status=self.max_retries,
            status_forcelist=(502, 503, 504),
            allowed_methods=frozenset({'GET', 'POST'}),
            backoff_factor=self.backoff_factor,
            raise_on_status=False,
        ))
        self.submit_session = self._build_session(Retry(
            total=self.max_retries,
            connect=self.max_retries,
            read=0,
            status=0,
            allowed_methods=frozenset({'POST'}),
            backoff_factor=self.backoff_factor,
            raise_on_status=False,
        ))

    def _build_session(self, retry):
        session = requests.Session()
        session.headers.update({
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json',
        })
        session.mount('https://', HTTPAdapter(max_retries=retry))
        session.mount('http://', HTTPAdapter(max_retries=retry))
        return session

    def _post(self, endpoint, payload, session=None):
        session = session or self.session
        url = f"{self.base_url}{endpoint}"
        try:
            response = session.post(url, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            logger.error(f"Trustless Work request to {endpoint} timed out: {str(e)}")
            raise EscrowGatewayError(f"Escrow service timed out on {endpoint}", transient=True) from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Trustless Work request to {endpoint} failed: {str(e)}")
            raise EscrowGatewayError(f"Escrow service unreachable on {endpoint}", transient=True) from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400:
            message = data.get('message') or response.reason
            logger.error(f"Trustless Work API error on {endpoint}: {response.status_code} - {message}")
            raise EscrowGatewayError(
                f"Escrow service error: {response.status_code} - {message}",
                status_code=response.status_code,
                transient=response.status_code >= 500,
                payload=data,
            )
        return data

    def _unsigned(self, data, endpoint):
        unsigned = data.get('unsignedTransaction')
        if not unsigned:
            raise EscrowGatewayError(f"Escrow service returned no unsigned transaction for {endpoint}", payload=data)
        return {
            'unsigned_transaction': unsigned,
            'status': data.get('status'),
        }

    def deploy_escrow(self, spec):
        endpoint = '/deployer/multi-release'
        payload = {
            'signer': spec['signer'],
            'engagementId': spec['engagement_id'],
            'title': spec['title'],
            'description': spec['description'],
            'roles': spec['roles'],
            'platformFee': spec['platform_fee'],
            'trustline': spec['trustline'],
            'milestones': [
                {
                    'description': milestone['description'],
                    'amount': float(milestone['amount']),
                    'receiver': spec['roles'].get('receiver', ''),
                }
                for milestone in spec['milestones']
            ],
        }
        logger.info(f"Deploying multi-release escrow for engagement {spec['engagement_id']}")
        return self._unsigned(self._post(endpoint, payload), endpoint)

    def submit_transaction(self, signed_transaction):
        endpoint = '/helper/send-transaction'
        data = self._post(endpoint, {'signedXdr': signed_transaction}, session=self.submit_session)

        status = str(data.get('status', '')).lower()
        if status not in SUCCESS_STATUSES:
            logger.error(f"Trustless Work rejected signed transaction: {data.get('message')}")
            raise EscrowGatewayError(
                f"Signed transaction was not accepted: {data.get('message') or status or 'unknown status'}",
                payload=data,
            )

        escrow = data.get('escrow') or {}
        logger.info(f"Signed transaction accepted. Contract: {data.get('contractId')}")
        return {
            'status': status,
            'message': data.get('message', ''),
            'contract_id': data.get('contractId') or escrow.get('contractId'),
            'hash': data.get('hash') or data.get('transactionHash'),
            'escrow': escrow,
        }

    def fund_escrow(self, contract_id, amount, signer):
        endpoint = '/escrow/multi-release/fund-escrow'
        payload = {
            'contractId': contract_id,
            'signer': signer,
            'amount': float(amount),
        }
        logger.info(f"Building funding transaction for contract {contract_id}, amount: {amount}")
        return self._unsigned(self._post(endpoint, payload), endpoint)

    def release_milestone_funds(self, contract_id, milestone_index, signer):
        endpoint = '/escrow/multi-release/release-milestone-funds'
        payload = {
            'contractId': contract_id,
            'releaseSigner': signer,
            'milestoneIndex': str(milestone_index),
        }
        logger.info(f"Building milestone release for contract {contract_id}, milestone: {milestone_index}")
        return self._unsigned(self._post(endpoint, payload), endpoint)
