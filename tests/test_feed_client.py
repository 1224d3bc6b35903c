import ftplib
from unittest import mock

import pytest
import requests

from feedsync import enums as feedsync_enums
from feedsync import messages as feedsync_messages
from feedsync.integrations.clients.feeds import client as feeds_client
from feedsync.integrations.clients.feeds import exceptions as feeds_exceptions


def make_config(protocol, host='feeds.example.com', port=None) -> feedsync_messages.RemoteConfig:
    return feedsync_messages.RemoteConfig(
        protocol=protocol,
        host=host,
        port=port,
        username='vendor',
        password='secret',
        remote_path='/out/inventory.csv',
    )


def mock_http_response(status_code, chunks=()):
    response = mock.MagicMock()
    response.status_code = status_code
    response.iter_content.return_value = list(chunks)
    request = mock.MagicMock()
    request.return_value.__enter__.return_value = response
    return request


@pytest.mark.parametrize('raw_host,host,protocol', [
    ('feeds.example.com', 'feeds.example.com', None),
    ('feeds.example.com/', 'feeds.example.com', None),
    ('sftp://feeds.example.com', 'feeds.example.com', feedsync_enums.FeedProtocol.SFTP),
    ('https://feeds.example.com/', 'feeds.example.com', feedsync_enums.FeedProtocol.HTTPS),
    ('gopher://feeds.example.com', 'feeds.example.com', None),
])
def test_split_host(raw_host, host, protocol) -> None:
    assert feeds_client.split_host(raw_host) == (host, protocol)


def test_client_is_chosen_by_protocol() -> None:
    assert isinstance(
        feeds_client.build_feed_client(make_config(feedsync_enums.FeedProtocol.SFTP)), feeds_client.SFTPFeedClient
    )
    ftps = feeds_client.build_feed_client(make_config(feedsync_enums.FeedProtocol.FTPS))
    assert isinstance(ftps, feeds_client.FTPFeedClient)
    assert ftps.secure is True
    assert ftps.port == 21
    assert isinstance(
        feeds_client.build_feed_client(make_config(feedsync_enums.FeedProtocol.HTTPS)), feeds_client.HTTPFeedClient
    )


def test_missing_host_is_rejected() -> None:
    with pytest.raises(ValueError):
        feeds_client.build_feed_client(make_config(feedsync_enums.FeedProtocol.SFTP, host=''))


def test_http_download_streams_to_bytes(tmp_path) -> None:
    client = feeds_client.HTTPFeedClient(
        make_config(feedsync_enums.FeedProtocol.HTTPS, port=8443), downloads_dir=str(tmp_path)
    )
    request = mock_http_response(200, [b'Product,UPC\n', b'SKU1,111'])

    with mock.patch.object(feeds_client.requests, 'request', request):
        content = client.download('/out/inventory.csv')

    assert content == b'Product,UPC\nSKU1,111'
    assert request.call_args.kwargs['url'] == 'https://feeds.example.com:8443/out/inventory.csv'
    assert list(tmp_path.iterdir()) == []


@pytest.mark.parametrize('status_code,error', [
    (401, feeds_exceptions.FeedAuthenticationError),
    (403, feeds_exceptions.FeedAuthenticationError),
    (404, feeds_exceptions.FeedFileNotFoundError),
    (500, feeds_exceptions.FeedConnectionError),
])
def test_http_status_codes_map_to_feed_errors(status_code, error) -> None:
    client = feeds_client.HTTPFeedClient(make_config(feedsync_enums.FeedProtocol.HTTPS))

    with mock.patch.object(feeds_client.requests, 'request', mock_http_response(status_code)):
        with pytest.raises(error):
            client.download('/out/inventory.csv')


def test_http_request_exception_is_connection_error() -> None:
    client = feeds_client.HTTPFeedClient(make_config(feedsync_enums.FeedProtocol.HTTP))
    request = mock.MagicMock(side_effect=requests.exceptions.ConnectionError('refused'))

    with mock.patch.object(feeds_client.requests, 'request', request):
        with pytest.raises(feeds_exceptions.FeedConnectionError):
            client.download('/out/inventory.csv')


@pytest.mark.parametrize('reply,error', [
    ('530 Login incorrect.', feeds_exceptions.FeedAuthenticationError),
    ('550 No such file or directory.', feeds_exceptions.FeedFileNotFoundError),
])
def test_ftp_permission_errors_are_classified(reply, error) -> None:
    client = feeds_client.FTPFeedClient(make_config(feedsync_enums.FeedProtocol.FTP))
    ftp = mock.MagicMock()
    ftp.login.side_effect = ftplib.error_perm(reply)

    with mock.patch.object(feeds_client.ftplib, 'FTP', return_value=ftp):
        with pytest.raises(error):
            client.download('/out/inventory.csv')

    ftp.close.assert_called_once()


def test_ftp_network_error_is_connection_error() -> None:
    client = feeds_client.FTPFeedClient(make_config(feedsync_enums.FeedProtocol.FTP))
    ftp = mock.MagicMock()
    ftp.connect.side_effect = OSError('Connection refused')

    with mock.patch.object(feeds_client.ftplib, 'FTP', return_value=ftp):
        with pytest.raises(feeds_exceptions.FeedConnectionError):
            client.download('/out/inventory.csv')
