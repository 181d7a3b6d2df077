from abc import ABC, abstractmethod


class EscrowGatewayError(Exception):
    """
    Raised by escrow gateways when the ledger service fails, times out or rejects a request.

    ``transient`` is True for network-level failures (connection errors, timeouts, 5xx);
    application rejections such as an invalid signature are never transient.
    """

    def __init__(self, message, *, status_code=None, transient=False, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.transient = transient
        self.payload = payload or {}


class BaseEscrowGateway(ABC):
    """
    Abstract base class for all escrow gateways.
    Defines the common interface the lifecycle engine relies on.
    """

    def __init__(self, **kwargs):
        """Initialize the gateway with configuration."""
        self.config = kwargs

    @abstractmethod
    def deploy_escrow(self, spec):
        """
        Build the deployment of a multi-release escrow.

        Args:
            spec: Dict with signer, engagement_id, title, description, roles,
                platform_fee, trustline and milestones

        Returns:
            Dict containing ``unsigned_transaction``
        """
        pass

    @abstractmethod
    def submit_transaction(self, signed_transaction):
        """
        Submit a transaction signed by the user's wallet.

        Args:
            signed_transaction: Signed transaction envelope (XDR)

        Returns:
            Dict containing ``status``, ``contract_id``, ``hash``, ``message`` and ``escrow``
        """
        pass

    @abstractmethod
    def fund_escrow(self, contract_id, amount, signer):
        """
        Build a funding transaction for an existing escrow.

        Returns:
            Dict containing ``unsigned_transaction``
        """
        pass

    @abstractmethod
    def release_milestone_funds(self, contract_id, milestone_index, signer):
        """
        Build the release of one milestone of a multi-release escrow.

        Returns:
            Dict containing ``unsigned_transaction``
        """
        pass
