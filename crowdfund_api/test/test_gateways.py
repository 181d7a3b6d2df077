import base64
import json

import pytest
import requests

from escrow.gateways import EscrowGatewayError, MockEscrowGateway, TrustlessWorkGateway, get_escrow_gateway


class FakeResponse:
    def __init__(self, status_code=200, data=None, reason='OK'):
        self.status_code = status_code
        self._data = data
        self.reason = reason

    def json(self):
        if self._data is None:
            raise ValueError("No JSON")
        return self._data


def deploy_spec():
    return {
        'signer': 'GSIGNER',
        'engagement_id': 'crowdfund-1',
        'title': 'Crowdfunding Project: Solar',
        'description': 'Escrow for crowdfunding project Solar',
        'roles': {'approver': 'GAPPROVER', 'receiver': 'GRECEIVER'},
        'platform_fee': 5.0,
        'trustline': {'address': 'CUSDC', 'decimals': 10000000},
        'milestones': [{'description': 'Phase 1', 'amount': '300.00'}],
    }


def test_get_escrow_gateway_uses_configured_provider():
    assert isinstance(get_escrow_gateway(), MockEscrowGateway)


def test_get_escrow_gateway_unknown_provider():
    with pytest.raises(ValueError):
        get_escrow_gateway('paypal')


def test_trustless_work_requires_api_key():
    with pytest.raises(EscrowGatewayError):
        TrustlessWorkGateway(API_KEY='')


def test_trustless_work_retry_policy():
    gateway = TrustlessWorkGateway()

    build_retry = gateway.session.get_adapter('https://escrow.test').max_retries
    submit_retry = gateway.submit_session.get_adapter('https://escrow.test').max_retries

    assert 503 in build_retry.status_forcelist
    assert build_retry.read == gateway.max_retries
    # a read timeout on submission is ambiguous and never retried
    assert submit_retry.read == 0
    assert submit_retry.status == 0
    assert submit_retry.connect == gateway.max_retries


def test_deploy_escrow_posts_payload(mocker):
    # setup
    gateway = TrustlessWorkGateway()
    post = mocker.patch.object(gateway.session, 'post', return_value=FakeResponse(data={
        'status': 'SUCCESS',
        'unsignedTransaction': 'AAAAUNSIGNED',
    }))

    # act
    result = gateway.deploy_escrow(deploy_spec())

    # assert
    assert result['unsigned_transaction'] == 'AAAAUNSIGNED'
    url = post.call_args.args[0]
    payload = post.call_args.kwargs['json']
    assert url == 'https://escrow.test/deployer/multi-release'
    assert payload['engagementId'] == 'crowdfund-1'
    assert payload['milestones'] == [{'description': 'Phase 1', 'amount': 300.0, 'receiver': 'GRECEIVER'}]
    assert post.call_args.kwargs['timeout'] == gateway.timeout


def test_missing_unsigned_transaction_is_an_error(mocker):
    gateway = TrustlessWorkGateway()
    mocker.patch.object(gateway.session, 'post', return_value=FakeResponse(data={'status': 'SUCCESS'}))

    with pytest.raises(EscrowGatewayError):
        gateway.fund_escrow('CCONTRACT', 100, 'GSIGNER')


def test_timeout_is_transient_failure(mocker):
    gateway = TrustlessWorkGateway()
    mocker.patch.object(gateway.session, 'post', side_effect=requests.exceptions.ReadTimeout("slow"))

    with pytest.raises(EscrowGatewayError) as excinfo:
        gateway.fund_escrow('CCONTRACT', 100, 'GSIGNER')
    assert excinfo.value.transient is True


def test_connection_error_is_transient_failure(mocker):
    gateway = TrustlessWorkGateway()
    mocker.patch.object(gateway.submit_session, 'post', side_effect=requests.exceptions.ConnectionError("down"))

    with pytest.raises(EscrowGatewayError) as excinfo:
        gateway.submit_transaction('SIGNED')
    assert excinfo.value.transient is True


def test_client_error_is_not_transient(mocker):
    gateway = TrustlessWorkGateway()
    mocker.patch.object(gateway.session, 'post', return_value=FakeResponse(
        status_code=400, data={'message': 'Invalid signer'}, reason='Bad Request',
    ))

    with pytest.raises(EscrowGatewayError) as excinfo:
        gateway.release_milestone_funds('CCONTRACT', 0, 'GSIGNER')
    assert excinfo.value.transient is False
    assert excinfo.value.status_code == 400


def test_server_error_is_transient(mocker):
    gateway = TrustlessWorkGateway()
    mocker.patch.object(gateway.session, 'post', return_value=FakeResponse(status_code=503, reason='Unavailable'))

    with pytest.raises(EscrowGatewayError) as excinfo:
        gateway.deploy_escrow(deploy_spec())
    assert excinfo.value.transient is True


def test_submit_transaction_success(mocker):
    gateway = TrustlessWorkGateway()
    post = mocker.patch.object(gateway.submit_session, 'post', return_value=FakeResponse(data={
        'status': 'SUCCESS',
        'message': 'sent',
        'contractId': 'CCONTRACT',
        'hash': 'abc123',
        'escrow': {'engagementId': 'crowdfund-1'},
    }))

    result = gateway.submit_transaction('SIGNED')

    assert post.call_args.kwargs['json'] == {'signedXdr': 'SIGNED'}
    assert result['contract_id'] == 'CCONTRACT'
    assert result['hash'] == 'abc123'
    assert result['status'] == 'success'


def test_submit_transaction_rejected(mocker):
    gateway = TrustlessWorkGateway()
    mocker.patch.object(gateway.submit_session, 'post', return_value=FakeResponse(data={
        'status': 'FAILED',
        'message': 'tx_bad_auth',
    }))

    with pytest.raises(EscrowGatewayError) as excinfo:
        gateway.submit_transaction('SIGNED')
    assert 'tx_bad_auth' in excinfo.value.message
    assert excinfo.value.transient is False


def test_mock_gateway_envelopes():
    gateway = MockEscrowGateway()

    unsigned = gateway.fund_escrow('CCONTRACT', '150.00', 'GSIGNER')['unsigned_transaction']

    envelope = json.loads(base64.b64decode(unsigned))
    assert envelope['operation'] == 'fund_escrow'
    assert envelope['contract_id'] == 'CCONTRACT'


def test_mock_gateway_rejects_marked_transactions():
    gateway = MockEscrowGateway()

    with pytest.raises(EscrowGatewayError):
        gateway.submit_transaction('reject-this')
    assert gateway.submit_transaction('SIGNED')['contract_id'].startswith('C')
