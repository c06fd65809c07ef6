"""
Remote Client Tests

PostgREST request shapes and error mapping, with the HTTP layer mocked.
"""
import pytest
import requests
from unittest.mock import Mock

from caresync.exceptions import RemoteRejectedError, RemoteTransientError
from caresync.services.sync.remote_client import RestTableClient


def _response(status_code, body=None, text=''):
    resp = Mock(status_code=status_code, text=text)
    if body is None:
        resp.json.side_effect = ValueError('no json')
    else:
        resp.json.return_value = body
    return resp


@pytest.fixture
def pool():
    pool = Mock()
    pool.request.return_value = _response(201, [{'id': 'c1', 'name': 'Sam', 'created_at': '2024-01-01T00:00:00Z'}])
    return pool


@pytest.fixture
def client(pool):
    return RestTableClient('https://remote.test/', api_key='k', timeout=3, pool=pool)


class TestRequests:
    """Request shapes."""

    def test_create(self, client, pool):
        record = client.create('children', {'id': 'c1', 'name': 'Sam'})

        pool.request.assert_called_once_with(
            'POST', 'https://remote.test/rest/v1/children',
            timeout=3,
            json={'id': 'c1', 'name': 'Sam'},
            headers={'Prefer': 'return=representation'},
        )
        assert record['created_at'] == '2024-01-01T00:00:00Z'

    def test_create_without_body_returns_payload(self, client, pool):
        pool.request.return_value = _response(201)

        assert client.create('children', {'id': 'c1'}) == {'id': 'c1'}

    def test_update(self, client, pool):
        pool.request.return_value = _response(204)

        client.update('medications', 'm1', {'dosage': '5ml'})

        pool.request.assert_called_once_with(
            'PATCH', 'https://remote.test/rest/v1/medications',
            timeout=3,
            params={'id': 'eq.m1'},
            json={'dosage': '5ml'},
            headers={'Prefer': 'return=minimal'},
        )

    def test_delete(self, client, pool):
        pool.request.return_value = _response(204)

        client.delete('daily_logs', 'l1')

        args, kwargs = pool.request.call_args
        assert args == ('DELETE', 'https://remote.test/rest/v1/daily_logs')
        assert kwargs['params'] == {'id': 'eq.l1'}

    def test_fetch_with_filters(self, client, pool):
        pool.request.return_value = _response(200, [{'id': 'm1', 'child_id': 'c1'}])

        records = client.fetch('medications', {'child_id': 'c1'})

        args, kwargs = pool.request.call_args
        assert args == ('GET', 'https://remote.test/rest/v1/medications')
        assert kwargs['params'] == {'select': '*', 'child_id': 'eq.c1'}
        assert records == [{'id': 'm1', 'child_id': 'c1'}]

    def test_stats_come_from_pool(self, client, pool):
        pool.get_stats.return_value = {'requests': 3, 'errors': 1}

        assert client.get_stats() == {'requests': 3, 'errors': 1}

    def test_auth_headers_on_default_pool(self):
        client = RestTableClient('https://remote.test', api_key='secret')

        headers = client._pool.session.headers
        assert headers['apikey'] == 'secret'
        assert headers['Authorization'] == 'Bearer secret'
        client.close()


class TestErrorMapping:
    """Remote failures become RemoteError subclasses."""

    @pytest.mark.parametrize('status', [500, 502, 503, 408, 429])
    def test_transient_status(self, client, pool, status):
        pool.request.return_value = _response(status, {'message': 'try later'})

        with pytest.raises(RemoteTransientError) as exc:
            client.update('children', 'c1', {'name': 'x'})

        assert exc.value.status_code == status
        assert exc.value.retryable is True

    @pytest.mark.parametrize('status', [400, 401, 404, 409, 422])
    def test_rejected_status(self, client, pool, status):
        pool.request.return_value = _response(status, {'message': 'duplicate key value'})

        with pytest.raises(RemoteRejectedError) as exc:
            client.create('children', {'id': 'c1'})

        assert exc.value.status_code == status
        assert exc.value.retryable is False
        assert 'duplicate key value' in str(exc.value)

    def test_network_error(self, client, pool):
        pool.request.side_effect = requests.Timeout('read timed out')

        with pytest.raises(RemoteTransientError):
            client.delete('children', 'c1')

    def test_unconfigured_base_url(self, pool):
        client = RestTableClient('', pool=pool)

        with pytest.raises(RemoteTransientError):
            client.create('children', {'id': 'c1'})
        pool.request.assert_not_called()

    def test_invalid_json_on_fetch(self, client, pool):
        pool.request.return_value = _response(200, text='<html>')

        with pytest.raises(RemoteTransientError):
            client.fetch('children')
